"""
Merge per-chunk transcripts into one continuous timeline.
"""
from dataclasses import replace
from typing import List, Optional, Sequence, Union

from .config import settings
from .logger import logger
from .models import TranscriptionGap, TranscriptionResult, TranscriptionSegment


ChunkOutcome = Union[TranscriptionResult, TranscriptionGap]


def merge_transcriptions(
    chunks: Sequence[ChunkOutcome],
    source_file: Optional[str] = None,
    duration_seconds: Optional[float] = None,
) -> TranscriptionResult:
    """
    Combine ordered chunk results into a single transcript.

    Segment times are shifted by the summed durations of all earlier
    chunks, ids are renumbered from 0 in chunk order. A gap entry stands
    for a chunk without a transcript: it advances the offset by its
    nominal duration and is listed in ``gaps`` of the merged result.

    Args:
        chunks: Results and gaps in original chunk order.
        source_file: Path of the un-split file (default: first chunk's source).
        duration_seconds: Duration of the un-split file (default: summed chunk durations).

    Returns:
        New TranscriptionResult. A single result without gaps is returned as is.
    """
    results = [c for c in chunks if isinstance(c, TranscriptionResult)]

    if not results:
        return TranscriptionResult(
            text="",
            segments=[],
            language=settings.DEFAULT_LANGUAGE,
            duration_seconds=0.0,
            processing_time_seconds=0.0,
            source_file=source_file or "",
            gaps=_place_gaps(chunks),
        )

    if len(chunks) == 1:
        # No offset arithmetic, nothing to drift.
        return results[0]

    time_offset = 0.0
    next_id = 0
    segments: List[TranscriptionSegment] = []
    gaps: List[TranscriptionGap] = []

    for chunk in chunks:
        if isinstance(chunk, TranscriptionGap):
            gaps.append(replace(chunk, start=time_offset))
            time_offset += chunk.duration_seconds
            continue

        for seg in chunk.segments:
            segments.append(
                replace(
                    seg,
                    id=next_id,
                    start=seg.start + time_offset,
                    end=seg.end + time_offset,
                )
            )
            next_id += 1
        time_offset += chunk.duration_seconds

    if gaps:
        logger.warning(
            "Merged transcript is missing %d chunk(s): %s",
            len(gaps),
            ", ".join(f"#{g.chunk_index + 1}" for g in gaps),
        )

    return TranscriptionResult(
        text=" ".join(r.text.strip() for r in results if r.text and r.text.strip()),
        segments=segments,
        language=results[0].language,
        duration_seconds=duration_seconds if duration_seconds is not None else time_offset,
        processing_time_seconds=sum(r.processing_time_seconds for r in results),
        source_file=source_file if source_file is not None else results[0].source_file,
        gaps=gaps,
    )


def _place_gaps(chunks: Sequence[ChunkOutcome]) -> List[TranscriptionGap]:
    offset = 0.0
    placed = []
    for gap in chunks:
        placed.append(replace(gap, start=offset))
        offset += gap.duration_seconds
    return placed
