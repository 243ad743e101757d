"""
Media metadata probing via FFprobe.
"""
import json
import subprocess
from fractions import Fraction
from pathlib import Path
from typing import Optional

from .config import settings
from .exceptions import ProbeError
from .logger import logger
from .models import AudioMetadata, MediaMetadata, VideoMetadata


def parse_frame_rate(value: Optional[str]) -> float:
    """
    Evaluate an FFprobe rational frame rate such as "30000/1001".

    Args:
        value: Rational or decimal string.

    Returns:
        Frame rate as float; 0.0 when missing or undefined ("0/0").
    """
    if not value:
        return 0.0
    try:
        return float(Fraction(value))
    except (ValueError, ZeroDivisionError):
        return 0.0


def _to_int(value) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _to_float(value) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


class MediaProber:
    """Read duration, bitrate and stream details of a media file."""

    def __init__(self, ffprobe_binary: Optional[str] = None, timeout: Optional[float] = None):
        self.ffprobe_binary = ffprobe_binary or settings.FFPROBE_BINARY
        self.timeout = timeout or settings.FFMPEG_TIMEOUT_SECONDS

    def probe(self, path: Path) -> MediaMetadata:
        """
        Probe a media file.

        Args:
            path: Audio or video file.

        Returns:
            AudioMetadata or VideoMetadata, depending on the streams present.

        Raises:
            ProbeError: If the file is missing, unreadable by FFprobe, has no
                decodable streams, or reports no duration.
        """
        path = Path(path)
        if not path.exists():
            raise ProbeError(f"Media file not found: {path}")

        info = self._run_ffprobe(path)

        streams = info.get("streams") or []
        if not streams:
            raise ProbeError(f"No streams found in {path}")

        fmt = info.get("format") or {}
        duration = self._read_duration(fmt, streams)
        if duration is None:
            raise ProbeError(f"FFprobe reported no duration for {path}")

        bit_rate = _to_float(fmt.get("bit_rate"))
        bitrate_kbps = bit_rate / 1000 if bit_rate is not None else None
        container = path.suffix.lstrip(".").lower()

        # Cover art in audio files shows up as an attached-picture video stream.
        video_stream = next(
            (
                s for s in streams
                if s.get("codec_type") == "video"
                and not (s.get("disposition") or {}).get("attached_pic")
            ),
            None,
        )
        audio_stream = next((s for s in streams if s.get("codec_type") == "audio"), None)

        if video_stream is not None:
            metadata: MediaMetadata = VideoMetadata(
                format=container,
                duration_seconds=duration,
                bitrate_kbps=bitrate_kbps,
                width=_to_int(video_stream.get("width")) or 0,
                height=_to_int(video_stream.get("height")) or 0,
                frame_rate=parse_frame_rate(
                    video_stream.get("r_frame_rate") or video_stream.get("avg_frame_rate")
                ),
                has_audio=audio_stream is not None,
                audio_codec=audio_stream.get("codec_name") if audio_stream else None,
                audio_channels=_to_int(audio_stream.get("channels")) if audio_stream else None,
                audio_sample_rate_hz=_to_int(audio_stream.get("sample_rate")) if audio_stream else None,
            )
        elif audio_stream is not None:
            metadata = AudioMetadata(
                format=container,
                duration_seconds=duration,
                bitrate_kbps=bitrate_kbps,
                channels=_to_int(audio_stream.get("channels")) or 0,
                sample_rate_hz=_to_int(audio_stream.get("sample_rate")) or 0,
                codec=audio_stream.get("codec_name") or "",
            )
        else:
            raise ProbeError(f"No audio or video stream found in {path}")

        logger.debug(
            "Probed %s: kind=%s, duration=%.2fs, bitrate=%s kbps",
            path.name, metadata.kind, metadata.duration_seconds, bitrate_kbps
        )
        return metadata

    def _run_ffprobe(self, path: Path) -> dict:
        """Run FFprobe and return its parsed JSON output."""
        cmd = [
            self.ffprobe_binary,
            "-v", "quiet",
            "-print_format", "json",
            "-show_format",
            "-show_streams",
            str(path),
        ]
        logger.debug("FFprobe command: %s", " ".join(cmd))

        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except FileNotFoundError as e:
            raise ProbeError(f"FFprobe not found ({self.ffprobe_binary}). Please install FFmpeg.") from e
        except subprocess.TimeoutExpired as e:
            raise ProbeError(f"FFprobe timed out after {self.timeout:.0f}s on {path}") from e

        if result.returncode != 0:
            raise ProbeError(
                f"FFprobe could not read {path} (exit code {result.returncode}): {result.stderr.strip()}"
            )

        try:
            return json.loads(result.stdout or "{}")
        except json.JSONDecodeError as e:
            raise ProbeError(f"Unparseable FFprobe output for {path}: {e}") from e

    @staticmethod
    def _read_duration(fmt: dict, streams: list) -> Optional[float]:
        duration = _to_float(fmt.get("duration"))
        if duration is not None:
            return max(duration, 0.0)

        stream_durations = [d for d in (_to_float(s.get("duration")) for s in streams) if d is not None]
        if stream_durations:
            return max(max(stream_durations), 0.0)
        return None
