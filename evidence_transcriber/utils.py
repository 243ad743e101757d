"""
Small helpers shared by the pipeline stages.
"""
import re
import uuid
from typing import Iterable, Optional


def format_log_preview(text: str, max_length: int = 80) -> str:
    """Collapse whitespace and cut ``text`` to ``max_length`` chars for log lines."""
    if not text:
        return ""

    flat = " ".join(text.split())
    return flat if len(flat) <= max_length else flat[:max_length] + "..."


def short_id(length: int = 8) -> str:
    """Return a short random hex token for unique file names."""
    return uuid.uuid4().hex[:length]


def format_timestamp(seconds: float) -> str:
    """Render seconds as MM:SS, or HH:MM:SS from one hour on."""
    minutes, secs = divmod(int(seconds), 60)
    hours, minutes = divmod(minutes, 60)
    if hours:
        return f"{hours:02d}:{minutes:02d}:{secs:02d}"
    return f"{minutes:02d}:{secs:02d}"


_TIMESTAMP_RE = re.compile(r"^\d+(?:\.\d+)?(?::\d+(?:\.\d+)?){0,2}$")


def parse_timestamp(value: str) -> Optional[float]:
    """
    Parse a timestamp written as seconds, MM:SS or HH:MM:SS.

    Fractional seconds are accepted in the last field. Returns None for
    anything else, never raises.
    """
    value = (value or "").strip()
    if not _TIMESTAMP_RE.match(value):
        return None

    total = 0.0
    for part in value.split(":"):
        total = total * 60 + float(part)
    return total


def segments_to_text_with_timestamps(segments: Iterable, with_speakers: bool = True) -> str:
    """
    Render a transcript as one "[MM:SS] text" line per segment.

    A "[speaker] " prefix is written only where the speaker changes.
    """
    lines = []
    previous_speaker = None

    for seg in segments:
        label = ""
        if with_speakers and seg.speaker and seg.speaker != previous_speaker:
            label = f"[{seg.speaker}] "
            previous_speaker = seg.speaker
        lines.append(f"[{format_timestamp(seg.start)}] {label}{seg.text}")

    return "\n".join(lines)
