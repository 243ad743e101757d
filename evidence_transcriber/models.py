"""
Data model shared by the probing, transcription, merge and diarization stages.
"""
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import List, Optional, Sequence, Union

from .config import settings
from .utils import format_timestamp


@dataclass
class AudioMetadata:
    """Probe result for a file without a (real) video stream."""

    format: str
    duration_seconds: float
    bitrate_kbps: Optional[float]
    channels: int
    sample_rate_hz: int
    codec: str
    kind: str = field(default="audio", init=False)


@dataclass
class VideoMetadata:
    """Probe result for a file with a video stream."""

    format: str
    duration_seconds: float
    bitrate_kbps: Optional[float]
    width: int
    height: int
    frame_rate: float
    has_audio: bool
    audio_codec: Optional[str] = None
    audio_channels: Optional[int] = None
    audio_sample_rate_hz: Optional[int] = None
    kind: str = field(default="video", init=False)


MediaMetadata = Union[AudioMetadata, VideoMetadata]


@dataclass
class ConversionOptions:
    """Transcode settings; None leaves the encoder default in place."""

    sample_rate_hz: Optional[int] = None
    channels: Optional[int] = None
    bitrate: Optional[str] = None
    normalize: bool = False
    noise_reduction: bool = False
    output_dir: Optional[Path] = None


@dataclass
class AudioChunk:
    """A slice of a split audio file, owned by the run that created it."""

    path: Path
    index: int
    start_seconds: float
    duration_seconds: float


@dataclass
class TranscriptionOptions:
    """Per-request speech-to-text options."""

    language: Optional[str] = None
    prompt: Optional[str] = None
    temperature: float = settings.WHISPER_TEMPERATURE
    response_format: str = settings.WHISPER_RESPONSE_FORMAT
    timestamp_granularities: Sequence[str] = ("segment",)
    model: str = settings.WHISPER_MODEL
    chunk_seconds: Optional[float] = None
    output_dir: Optional[Path] = None


@dataclass
class TranscriptionSegment:
    """A single timestamped span of transcribed text."""

    id: int
    start: float
    end: float
    text: str
    confidence: float = 1.0
    speaker: Optional[str] = None

    def __repr__(self):
        speaker_prefix = f"[{self.speaker}] " if self.speaker else ""
        return f"[{format_timestamp(self.start)}] {speaker_prefix}{self.text}"

    def to_dict(self) -> dict:
        """Convert the segment to a dictionary representation."""
        return {
            "id": self.id,
            "start": self.start,
            "end": self.end,
            "text": self.text,
            "timestamp": format_timestamp(self.start),
            "speaker": self.speaker,
            "confidence": self.confidence,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TranscriptionSegment":
        return cls(
            id=int(data["id"]),
            start=float(data["start"]),
            end=float(data["end"]),
            text=data.get("text", ""),
            confidence=float(data.get("confidence", 1.0)),
            speaker=data.get("speaker"),
        )


@dataclass
class TranscriptionGap:
    """
    A chunk with no transcript in a merged timeline.

    ``start`` is the global offset of the chunk; it is filled in by the
    merger, producers only know the chunk index and nominal duration.
    """

    chunk_index: int
    duration_seconds: float
    reason: str
    start: float = 0.0

    @property
    def end(self) -> float:
        return self.start + self.duration_seconds

    def to_dict(self) -> dict:
        data = asdict(self)
        data["end"] = self.end
        return data


@dataclass
class TranscriptionResult:
    """Transcript of one file (or one chunk of it)."""

    text: str
    segments: List[TranscriptionSegment]
    language: str
    duration_seconds: float
    processing_time_seconds: float
    source_file: str
    gaps: List[TranscriptionGap] = field(default_factory=list)

    @property
    def speakers(self) -> List[str]:
        """Distinct speaker labels in order of first appearance."""
        seen: List[str] = []
        for seg in self.segments:
            if seg.speaker and seg.speaker not in seen:
                seen.append(seg.speaker)
        return seen

    def to_dict(self) -> dict:
        return {
            "text": self.text,
            "segments": [seg.to_dict() for seg in self.segments],
            "language": self.language,
            "duration_seconds": self.duration_seconds,
            "processing_time_seconds": self.processing_time_seconds,
            "source_file": self.source_file,
            "gaps": [gap.to_dict() for gap in self.gaps],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TranscriptionResult":
        return cls(
            text=data.get("text", ""),
            segments=[TranscriptionSegment.from_dict(seg) for seg in data.get("segments", [])],
            language=data.get("language", ""),
            duration_seconds=float(data.get("duration_seconds", 0.0)),
            processing_time_seconds=float(data.get("processing_time_seconds", 0.0)),
            source_file=data.get("source_file", ""),
            gaps=[
                TranscriptionGap(
                    chunk_index=int(gap["chunk_index"]),
                    duration_seconds=float(gap["duration_seconds"]),
                    reason=gap.get("reason", ""),
                    start=float(gap.get("start", 0.0)),
                )
                for gap in data.get("gaps", [])
            ],
        )
