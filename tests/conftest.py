"""
Shared fixtures: fake backends and a prober that never calls ffprobe.
"""
import re
from pathlib import Path
from unittest.mock import Mock

import pytest

from evidence_transcriber import retry_handler
from evidence_transcriber.media_probe import MediaProber
from evidence_transcriber.models import AudioMetadata, TranscriptionResult, TranscriptionSegment


class FakeSpeechBackend:
    """In-memory SpeechToTextBackend recording every request."""

    def __init__(self, responder=None, fail_on=()):
        """
        Args:
            responder: Callable(audio_path, options, call_index) -> response.
            fail_on: Call indices that raise ConnectionError instead.
        """
        self.responder = responder or default_response
        self.fail_on = set(fail_on)
        self.calls = []

    def transcribe(self, audio_path, options):
        index = len(self.calls)
        self.calls.append((Path(audio_path), options))
        if index in self.fail_on:
            raise ConnectionError("speech backend unreachable")
        return self.responder(Path(audio_path), options, index)

    @property
    def prompts(self):
        return [options.prompt for _, options in self.calls]


class FakeReasoningBackend:
    """In-memory ReasoningBackend returning a canned answer."""

    def __init__(self, response="", error=None):
        self.response = response
        self.error = error
        self.prompts = []
        self.system_prompts = []

    def complete(self, prompt, system_prompt=None, temperature=0.2, max_tokens=None):
        self.prompts.append(prompt)
        self.system_prompts.append(system_prompt)
        if self.error is not None:
            raise self.error
        return self.response


def default_response(audio_path, options, index):
    return {
        "text": f"Chunk {index + 1} text.",
        "language": "en",
        "segments": [{"start": 0.0, "end": 4.0, "text": f"Chunk {index + 1} text."}],
    }


def audio_metadata(duration, fmt="mp3"):
    return AudioMetadata(
        format=fmt,
        duration_seconds=duration,
        bitrate_kbps=128.0,
        channels=1,
        sample_rate_hz=44100,
        codec="mp3",
    )


_SEGMENT_NAME = re.compile(r"_segment_(\d+)_")


def make_prober(total_duration, chunk_durations=()):
    """
    Mock MediaProber: chunk files (``*_segment_N_*``) report
    ``chunk_durations[N - 1]``, every other file ``total_duration``.
    """
    def probe(path):
        match = _SEGMENT_NAME.search(Path(path).name)
        if match and chunk_durations:
            return audio_metadata(chunk_durations[int(match.group(1)) - 1])
        return audio_metadata(total_duration)

    prober = Mock(spec=MediaProber)
    prober.probe.side_effect = probe
    return prober


def make_result(segments, duration, text=None, language="en", processing_time=1.0, source_file="chunk.mp3"):
    """Build a TranscriptionResult from (start, end, text) tuples."""
    segs = [
        TranscriptionSegment(id=i, start=start, end=end, text=seg_text)
        for i, (start, end, seg_text) in enumerate(segments)
    ]
    return TranscriptionResult(
        text=text if text is not None else " ".join(s.text for s in segs),
        segments=segs,
        language=language,
        duration_seconds=duration,
        processing_time_seconds=processing_time,
        source_file=source_file,
    )


@pytest.fixture(autouse=True)
def fresh_circuit_breaker(monkeypatch):
    """Isolate the module-wide circuit breaker between tests."""
    breaker = retry_handler.CircuitBreaker()
    monkeypatch.setattr(retry_handler, "_circuit_breaker", breaker)
    return breaker


@pytest.fixture
def audio_file(tmp_path):
    """Small fake audio file."""
    path = tmp_path / "interview.mp3"
    path.write_bytes(b"fake audio content")
    return path


@pytest.fixture
def large_audio_file(tmp_path):
    """Sparse 30 MB fake audio file."""
    path = tmp_path / "recording.mp3"
    with open(path, "wb") as f:
        f.seek(30 * 1024 * 1024 - 1)
        f.write(b"\0")
    return path
