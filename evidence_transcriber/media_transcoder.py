"""
Audio conversion, extraction and splitting using FFmpeg.
"""
import math
import subprocess
from dataclasses import replace
from pathlib import Path
from typing import List, Optional

from .chunk_policy import nominal_chunk_duration
from .config import AudioFormat, DEFAULT_CHUNK_SECONDS, settings
from .exceptions import ConversionError, ProbeError
from .logger import logger
from .media_probe import MediaProber
from .models import AudioChunk, AudioMetadata, ConversionOptions, VideoMetadata
from .utils import short_id


AUDIO_ENCODERS = {
    AudioFormat.MP3: "libmp3lame",
    AudioFormat.AAC: "aac",
    AudioFormat.FLAC: "flac",
    AudioFormat.OGG: "libvorbis",
    AudioFormat.WAV: "pcm_s16le",
}

NOISE_REDUCTION_FILTER = "afftdn=nf=-20"
NORMALIZE_FILTER = "loudnorm"

# Speech-recognition preset applied before transcription.
STANDARD_SPEECH_OPTIONS = ConversionOptions(
    sample_rate_hz=44100,
    channels=1,
    bitrate="128k",
    normalize=True,
    noise_reduction=True,
)


class MediaTranscoder:
    """Produce new audio files from media inputs; inputs are never modified."""

    def __init__(
        self,
        prober: Optional[MediaProber] = None,
        ffmpeg_binary: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.prober = prober or MediaProber()
        self.ffmpeg_binary = ffmpeg_binary or settings.FFMPEG_BINARY
        self.timeout = timeout or settings.FFMPEG_TIMEOUT_SECONDS

    def convert_audio(
        self,
        input_path: Path,
        target_format: str = AudioFormat.MP3,
        options: Optional[ConversionOptions] = None,
    ) -> Path:
        """
        Convert an audio file to another format.

        Args:
            input_path: Source audio file.
            target_format: One of AudioFormat.ALL.
            options: Resampling, channel, bitrate and filter settings.

        Returns:
            Path of the new file.

        Raises:
            ConversionError: If the input is missing, FFmpeg fails, or no
                output file exists afterwards.
        """
        input_path = Path(input_path)
        options = options or ConversionOptions()
        encoder = self._encoder_for(target_format)

        if not input_path.exists():
            raise ConversionError(f"Input file not found: {input_path}")

        output_path = self._output_dir(input_path, options) / f"{input_path.stem}_{short_id()}.{target_format}"

        cmd = [self.ffmpeg_binary, "-i", str(input_path)]
        cmd += self._audio_args(options, with_filters=True)
        cmd += ["-codec:a", encoder, "-y", str(output_path)]

        logger.info("Converting %s to %s", input_path.name, target_format)
        self._run(cmd, f"convert {input_path.name}")
        self._require_output(output_path, f"Failed to convert audio: no usable output file at {output_path}")

        return output_path

    def extract_audio_from_video(
        self,
        input_path: Path,
        target_format: str = AudioFormat.MP3,
        options: Optional[ConversionOptions] = None,
    ) -> Path:
        """
        Extract the audio track of a video file.

        Args:
            input_path: Source video file.
            target_format: One of AudioFormat.ALL.
            options: Audio settings for the extracted track.

        Returns:
            Path of the extracted audio file.

        Raises:
            ConversionError: If the input is missing, is not a video, or FFmpeg fails.
        """
        input_path = Path(input_path)
        options = options or ConversionOptions()
        encoder = self._encoder_for(target_format)

        if not input_path.exists():
            raise ConversionError(f"Input video file not found: {input_path}")

        try:
            metadata = self.prober.probe(input_path)
        except ProbeError as e:
            raise ConversionError(f"Failed to extract audio from video {input_path}: {e}") from e

        if not isinstance(metadata, VideoMetadata):
            raise ConversionError(f"File is not a video: {input_path}")

        output_path = self._output_dir(input_path, options) / (
            f"{input_path.stem}_audio_{short_id()}.{target_format}"
        )

        cmd = [self.ffmpeg_binary, "-i", str(input_path), "-vn"]
        cmd += self._audio_args(options, with_filters=True)
        cmd += ["-codec:a", encoder, "-y", str(output_path)]

        logger.info("Extracting audio from video: %s", input_path.name)
        self._run(cmd, f"extract audio from {input_path.name}")
        self._require_output(output_path, f"Audio extraction failed: no usable output file at {output_path}")

        logger.info("Audio extracted successfully: %s", output_path)
        return output_path

    def standardize_audio(
        self,
        input_path: Path,
        target_format: str = AudioFormat.MP3,
        options: Optional[ConversionOptions] = None,
    ) -> Path:
        """
        Convert to the speech preset: mono, 44.1 kHz, 128k, normalized, denoised.

        Only ``output_dir`` and explicitly set numeric fields of ``options``
        override the preset.
        """
        preset = STANDARD_SPEECH_OPTIONS
        if options is not None:
            preset = replace(
                preset,
                sample_rate_hz=options.sample_rate_hz or preset.sample_rate_hz,
                channels=options.channels or preset.channels,
                bitrate=options.bitrate or preset.bitrate,
                output_dir=options.output_dir,
            )
        return self.convert_audio(input_path, target_format, preset)

    def split_audio_file(
        self,
        input_path: Path,
        segment_seconds: float = DEFAULT_CHUNK_SECONDS,
        options: Optional[ConversionOptions] = None,
    ) -> List[AudioChunk]:
        """
        Split an audio file into fixed-length chunks.

        One FFmpeg invocation is issued per chunk. A chunk whose output is
        missing or empty is skipped, so the result may be shorter than
        ``ceil(duration / segment_seconds)``; each chunk keeps its ordinal.

        Args:
            input_path: Source audio file.
            segment_seconds: Chunk length in seconds.
            options: Audio settings applied to every chunk.

        Returns:
            AudioChunk list in time order.

        Raises:
            ConversionError: If the input is missing, not audio, or FFmpeg is unavailable.
        """
        input_path = Path(input_path)
        options = options or ConversionOptions()

        if segment_seconds <= 0:
            raise ConversionError(f"Segment length must be positive, got {segment_seconds}")

        if not input_path.exists():
            raise ConversionError(f"Input file not found: {input_path}")

        try:
            metadata = self.prober.probe(input_path)
        except ProbeError as e:
            raise ConversionError(f"Failed to split audio file {input_path}: {e}") from e

        if not isinstance(metadata, AudioMetadata):
            raise ConversionError(f"File is not an audio file: {input_path}")

        output_dir = self._output_dir(input_path, options)
        extension = input_path.suffix
        total_duration = metadata.duration_seconds
        num_segments = math.ceil(total_duration / segment_seconds)

        logger.info(
            "Splitting %s (%.1f sec) into %d chunks of %.0f sec",
            input_path.name, total_duration, num_segments, segment_seconds
        )

        chunks: List[AudioChunk] = []
        for i in range(num_segments):
            start_time = i * segment_seconds
            chunk_path = output_dir / f"{input_path.stem}_segment_{i + 1}_{short_id()}{extension}"

            cmd = [
                self.ffmpeg_binary,
                "-i", str(input_path),
                "-ss", str(start_time),
                "-t", str(segment_seconds),
            ]
            cmd += self._audio_args(options, with_filters=False)
            cmd += ["-y", str(chunk_path)]

            logger.debug("Creating chunk %d/%d", i + 1, num_segments)
            try:
                self._run(cmd, f"create chunk {i + 1}/{num_segments}")
            except ConversionError as e:
                if isinstance(e.__cause__, FileNotFoundError):
                    raise
                logger.warning("Skipping chunk %d/%d: %s", i + 1, num_segments, e)
                continue

            if not chunk_path.exists() or chunk_path.stat().st_size == 0:
                logger.warning("Skipping chunk %d/%d: no output produced", i + 1, num_segments)
                chunk_path.unlink(missing_ok=True)
                continue

            chunks.append(
                AudioChunk(
                    path=chunk_path,
                    index=i,
                    start_seconds=start_time,
                    duration_seconds=nominal_chunk_duration(i, segment_seconds, total_duration),
                )
            )

        logger.info("Created %d/%d chunks", len(chunks), num_segments)
        return chunks

    @staticmethod
    def _encoder_for(target_format: str) -> str:
        try:
            return AUDIO_ENCODERS[target_format]
        except KeyError:
            raise ConversionError(
                f"Unsupported audio format: {target_format}. Supported: {', '.join(AudioFormat.ALL)}"
            ) from None

    @staticmethod
    def _output_dir(input_path: Path, options: ConversionOptions) -> Path:
        output_dir = Path(options.output_dir) if options.output_dir else input_path.parent
        output_dir.mkdir(parents=True, exist_ok=True)
        return output_dir

    @staticmethod
    def _audio_args(options: ConversionOptions, with_filters: bool) -> List[str]:
        """Build FFmpeg audio arguments; omitted options keep encoder defaults."""
        args: List[str] = []
        if options.sample_rate_hz:
            args += ["-ar", str(options.sample_rate_hz)]
        if options.channels:
            args += ["-ac", str(options.channels)]
        if options.bitrate:
            args += ["-b:a", options.bitrate]

        if with_filters:
            # Both filters share one chain, a second -af would replace the first.
            filters = []
            if options.noise_reduction:
                filters.append(NOISE_REDUCTION_FILTER)
            if options.normalize:
                filters.append(NORMALIZE_FILTER)
            if filters:
                args += ["-af", ",".join(filters)]
        return args

    def _run(self, cmd: List[str], description: str) -> None:
        """Run FFmpeg, mapping every failure mode to ConversionError."""
        logger.debug("FFmpeg command: %s", " ".join(cmd))

        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except FileNotFoundError as e:
            raise ConversionError(
                "FFmpeg not found. Please install FFmpeg:\n"
                "  macOS: brew install ffmpeg\n"
                "  Linux: sudo apt install ffmpeg\n"
                "  Windows: Download from https://ffmpeg.org/download.html"
            ) from e
        except subprocess.TimeoutExpired as e:
            raise ConversionError(f"FFmpeg timed out after {self.timeout:.0f}s ({description})") from e

        if result.returncode != 0:
            logger.error("FFmpeg failed with return code %d", result.returncode)
            logger.debug("FFmpeg stderr: %s", result.stderr)
            stderr_tail = (result.stderr or "").strip()[-300:]
            raise ConversionError(f"FFmpeg failed to {description} (exit code {result.returncode}): {stderr_tail}")

    @staticmethod
    def _require_output(output_path: Path, message: str) -> None:
        """FFmpeg can exit 0 without writing audio; an empty file counts as missing."""
        if not output_path.exists():
            raise ConversionError(message)
        if output_path.stat().st_size == 0:
            output_path.unlink(missing_ok=True)
            raise ConversionError(f"{message} (empty file)")
