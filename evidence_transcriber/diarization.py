"""
Speaker attribution for finished transcripts.

A reasoning backend labels the timestamped transcript lines with speakers;
its free-text answer is mapped back onto the original segments. The
mapping is best-effort: any failure leaves the transcript undiarized.
"""
import re
from dataclasses import dataclass, replace
from typing import Dict, List, Optional

from .exceptions import DiarizationError
from .interfaces import ReasoningBackend
from .logger import logger
from .models import TranscriptionResult, TranscriptionSegment
from .utils import format_log_preview, parse_timestamp


SYSTEM_PROMPT = (
    "You are a forensic transcription assistant. You attribute each line of an "
    "interview or recording transcript to the person speaking it. You never change, "
    "merge, drop or reorder the transcript lines."
)

# [12.00-15.50]: Detective Smith: text
_TIMESTAMPED_LINE = re.compile(
    r"^\s*\[\s*(?P<start>[\d:.]+)\s*-\s*(?P<end>[\d:.]+)\s*\]\s*:?\s*"
    r"\**\s*(?P<speaker>[A-Za-z][^:\]\n*]*?)\s*\**\s*:\s*(?P<text>.*)$"
)

# Detective Smith: text
_SPEAKER_LINE = re.compile(
    r"^\s*\**\[?\s*(?P<speaker>[A-Za-z][\w .'-]{0,40}?)\s*\]?\**\s*:\s*(?P<text>\S.*)$"
)

_TIMESTAMP_PREFIX = re.compile(r"^\s*\[\s*\d")


@dataclass
class LabeledLine:
    """A timestamped line of the backend response."""

    start: float
    end: float
    speaker: str
    text: str


@dataclass
class LabeledBlock:
    """Speaker-labeled text without usable timestamps."""

    speaker: str
    text: str


def _clean_label(label: str) -> str:
    return label.strip().strip("*[]").strip()


def parse_timestamped_lines(response: str) -> List[LabeledLine]:
    """
    Extract ``[start-end]: speaker: text`` lines from a backend response.

    Lines that do not fit the shape, or whose timestamps cannot be read,
    are ignored. Timestamps may be plain seconds or MM:SS / HH:MM:SS.
    """
    lines: List[LabeledLine] = []
    for raw in (response or "").splitlines():
        match = _TIMESTAMPED_LINE.match(raw)
        if not match:
            continue

        start = parse_timestamp(match.group("start"))
        end = parse_timestamp(match.group("end"))
        speaker = _clean_label(match.group("speaker"))
        if start is None or end is None or not speaker:
            continue

        lines.append(LabeledLine(start=start, end=end, speaker=speaker, text=match.group("text").strip()))
    return lines


def parse_speaker_blocks(response: str) -> List[LabeledBlock]:
    """Extract ``speaker: text`` lines that carry no timestamp."""
    blocks: List[LabeledBlock] = []
    for raw in (response or "").splitlines():
        if _TIMESTAMP_PREFIX.match(raw):
            continue

        match = _SPEAKER_LINE.match(raw)
        if not match:
            continue

        speaker = _clean_label(match.group("speaker"))
        text = match.group("text").strip()
        if speaker and text:
            blocks.append(LabeledBlock(speaker=speaker, text=text))
    return blocks


def _normalize(text: str) -> str:
    return " ".join(text.lower().split())


class DiarizationPostProcessor:
    """Attach speaker labels to transcript segments using a reasoning backend."""

    def __init__(
        self,
        backend: ReasoningBackend,
        time_tolerance: float = 1.0,
        snippet_chars: int = 20,
        temperature: float = 0.2,
    ):
        """
        Args:
            backend: LLM used to label the transcript.
            time_tolerance: Max distance in seconds between a labeled line's
                start/end and a segment's start/end for the timestamp match.
            snippet_chars: Leading characters of a labeled block used for the
                text fallback match.
            temperature: Sampling temperature for the backend.
        """
        self.backend = backend
        self.time_tolerance = time_tolerance
        self.snippet_chars = snippet_chars
        self.temperature = temperature

    def diarize(self, transcript: TranscriptionResult, speaker_count: Optional[int] = None) -> TranscriptionResult:
        """
        Return a copy of ``transcript`` with speaker labels where they could be resolved.

        Never raises: on any failure the input transcript is returned
        unchanged. Segments are never removed, reordered or edited beyond
        ``speaker``, and the input object is not mutated.

        Args:
            transcript: Merged transcript.
            speaker_count: Expected number of speakers, passed to the backend as a hint.
        """
        if not transcript.segments:
            logger.info("Transcript has no segments, skipping diarization")
            return transcript

        try:
            return self._diarize(transcript, speaker_count)
        except Exception as e:
            logger.warning("Diarization failed, returning transcript without speakers: %s", e)
            return transcript

    def _diarize(self, transcript: TranscriptionResult, speaker_count: Optional[int]) -> TranscriptionResult:
        prompt = self.build_prompt(transcript, speaker_count)
        logger.info("Requesting speaker labels for %d segments", len(transcript.segments))

        response = self.backend.complete(prompt, system_prompt=SYSTEM_PROMPT, temperature=self.temperature)
        if not response or not response.strip():
            raise DiarizationError("Reasoning backend returned an empty response")
        logger.debug("Diarization response: %s", format_log_preview(response, 300))

        mapping = self.map_speakers(transcript.segments, response)
        if not mapping:
            logger.warning("No speaker labels could be matched to transcript segments")
            return transcript

        segments = [
            replace(seg, speaker=mapping[seg.id]) if seg.id in mapping else replace(seg)
            for seg in transcript.segments
        ]
        logger.info(
            "Speaker labels assigned to %d/%d segments (%d speakers)",
            len(mapping), len(segments), len(set(mapping.values()))
        )
        return replace(transcript, segments=segments, gaps=list(transcript.gaps))

    def map_speakers(self, segments: List[TranscriptionSegment], response: str) -> Dict[int, str]:
        """
        Resolve speaker labels onto segment ids.

        Pass 1 matches timestamped lines whose start and end both lie within
        ``time_tolerance`` of a segment. Pass 2 takes the leading characters
        of every block pass 1 did not resolve and looks for them in the text
        of a still unlabeled segment.
        """
        mapping: Dict[int, str] = {}
        unresolved: List[LabeledBlock] = []

        for line in parse_timestamped_lines(response):
            matched = False
            for seg in segments:
                if (
                    abs(seg.start - line.start) < self.time_tolerance
                    and abs(seg.end - line.end) < self.time_tolerance
                ):
                    mapping.setdefault(seg.id, line.speaker)
                    matched = True
                    break
            if not matched:
                unresolved.append(LabeledBlock(speaker=line.speaker, text=line.text))

        unresolved.extend(parse_speaker_blocks(response))
        by_window = len(mapping)

        for block in unresolved:
            snippet = _normalize(block.text)[:self.snippet_chars].strip()
            if not snippet:
                continue
            for seg in segments:
                if seg.id not in mapping and snippet in _normalize(seg.text):
                    mapping[seg.id] = block.speaker
                    break

        logger.debug("Speaker mapping: %d by timestamp, %d by text", by_window, len(mapping) - by_window)
        return mapping

    @staticmethod
    def build_prompt(transcript: TranscriptionResult, speaker_count: Optional[int] = None) -> str:
        """Build the labeling request: full text, timestamped lines and answer format."""
        listing = "\n".join(
            f"[{seg.start:.2f}-{seg.end:.2f}] {seg.text}" for seg in transcript.segments
        )

        if speaker_count:
            speakers_hint = f"The recording contains {speaker_count} speakers."
        else:
            speakers_hint = "Determine the number of speakers from the content."

        return (
            "Identify who is speaking in each line of the transcript below.\n"
            f"{speakers_hint}\n\n"
            "Rules:\n"
            "- Label speakers by their role when it is clear (e.g. Detective, Witness, "
            "Suspect, Dispatcher), otherwise use Speaker 1, Speaker 2, ...\n"
            "- Use the same label for the same person throughout the whole transcript.\n"
            "- Answer with one line per transcript line, keeping the timestamps exactly as given:\n"
            "  [start-end]: Speaker label: text\n"
            "- Do not add commentary before or after the lines.\n\n"
            f"Full transcript:\n{transcript.text}\n\n"
            f"Timestamped lines:\n{listing}\n"
        )
