"""
Decide whether a file must be split before it is sent to the speech-to-text backend.
"""
import math
from dataclasses import dataclass
from typing import Optional

from .config import (
    DEFAULT_CHUNK_SECONDS,
    WHISPER_MAX_INLINE_SECONDS,
    WHISPER_MAX_UPLOAD_BYTES,
)


@dataclass(frozen=True)
class ChunkPlan:
    """Outcome of the chunk policy for one file."""

    split: bool
    chunk_seconds: float
    expected_chunks: int
    reason: str = ""


def needs_splitting(
    size_bytes: int,
    duration_seconds: float,
    max_upload_bytes: int = WHISPER_MAX_UPLOAD_BYTES,
    max_inline_seconds: float = WHISPER_MAX_INLINE_SECONDS,
) -> bool:
    """Return True when the file exceeds the backend payload or duration limit."""
    return size_bytes > max_upload_bytes or duration_seconds > max_inline_seconds


def plan_chunks(
    size_bytes: int,
    duration_seconds: float,
    chunk_seconds: Optional[float] = None,
    max_upload_bytes: int = WHISPER_MAX_UPLOAD_BYTES,
    max_inline_seconds: float = WHISPER_MAX_INLINE_SECONDS,
) -> ChunkPlan:
    """
    Build the chunking plan from already-probed file facts.

    Args:
        size_bytes: File size on disk.
        duration_seconds: Probed duration.
        chunk_seconds: Chunk length override (default 5 minutes).
        max_upload_bytes: Backend payload limit.
        max_inline_seconds: Longest file sent in a single request.

    Returns:
        ChunkPlan; ``expected_chunks`` is 1 when no split is needed.
    """
    chunk_seconds = chunk_seconds or DEFAULT_CHUNK_SECONDS
    if chunk_seconds <= 0:
        raise ValueError(f"Chunk length must be positive, got {chunk_seconds}")

    if not needs_splitting(size_bytes, duration_seconds, max_upload_bytes, max_inline_seconds):
        return ChunkPlan(split=False, chunk_seconds=chunk_seconds, expected_chunks=1)

    if size_bytes > max_upload_bytes:
        reason = f"size {size_bytes / (1024 * 1024):.1f} MB exceeds {max_upload_bytes / (1024 * 1024):.0f} MB"
    else:
        reason = f"duration {duration_seconds:.0f}s exceeds {max_inline_seconds:.0f}s"

    return ChunkPlan(
        split=True,
        chunk_seconds=chunk_seconds,
        expected_chunks=max(1, math.ceil(duration_seconds / chunk_seconds)),
        reason=reason,
    )


def nominal_chunk_duration(index: int, chunk_seconds: float, total_duration: float) -> float:
    """Length of chunk ``index`` when ``total_duration`` is cut every ``chunk_seconds``."""
    remaining = total_duration - index * chunk_seconds
    return max(0.0, min(chunk_seconds, remaining))
