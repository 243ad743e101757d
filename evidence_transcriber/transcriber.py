"""
Transcription orchestrator: single-request and chunked transcription of audio files.
"""
import json
import shutil
import tempfile
import time
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, List, Optional

from tqdm import tqdm

from .chunk_policy import ChunkPlan, nominal_chunk_duration, plan_chunks
from .config import DEFAULT_SEGMENT_CONFIDENCE, ResponseFormat, settings
from .exceptions import ConfigurationError, ConversionError, ProbeError, TranscriptionError
from .interfaces import SpeechToTextBackend
from .logger import logger
from .media_probe import MediaProber
from .media_transcoder import MediaTranscoder
from .models import (
    AudioChunk,
    ConversionOptions,
    MediaMetadata,
    TranscriptionGap,
    TranscriptionOptions,
    TranscriptionResult,
    TranscriptionSegment,
    VideoMetadata,
)
from .segment_merger import ChunkOutcome, merge_transcriptions
from .utils import format_log_preview, short_id


def build_context_prompt(
    previous_text: Optional[str],
    base_prompt: Optional[str],
    window: int = settings.CONTEXT_WINDOW_CHARS,
) -> Optional[str]:
    """
    Prompt hint for the next chunk: the tail of the previous chunk's text.

    Falls back to the caller's prompt for the first chunk and after a
    failed or silent chunk.
    """
    if previous_text and previous_text.strip() and window > 0:
        return previous_text.strip()[-window:]
    return base_prompt


@dataclass
class ChunkFoldState:
    """Accumulator threaded through the ordered chunk sequence."""

    previous_text: Optional[str] = None
    outcomes: List[ChunkOutcome] = field(default_factory=list)
    succeeded: int = 0


def _field(obj: Any, name: str, default=None):
    """Read a response field from either an SDK object or a dict."""
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


class TranscriptionOrchestrator:
    """Turn an audio file of any length into one ordered transcript."""

    def __init__(
        self,
        backend: SpeechToTextBackend,
        prober: Optional[MediaProber] = None,
        transcoder: Optional[MediaTranscoder] = None,
        inter_chunk_delay: Optional[float] = None,
        context_window: Optional[int] = None,
        keep_chunk_files: Optional[bool] = None,
    ):
        """
        Args:
            backend: Speech-to-text strategy.
            prober: Media prober (shared with the transcoder by default).
            transcoder: Splits oversized files into chunks.
            inter_chunk_delay: Pause between chunk requests, in seconds.
            context_window: Trailing characters of a chunk passed to the next one.
            keep_chunk_files: Leave chunk files on disk after the run.
        """
        self.backend = backend
        self.prober = prober or MediaProber()
        self.transcoder = transcoder or MediaTranscoder(prober=self.prober)
        self.inter_chunk_delay = (
            settings.INTER_CHUNK_DELAY_SECONDS if inter_chunk_delay is None else inter_chunk_delay
        )
        self.context_window = settings.CONTEXT_WINDOW_CHARS if context_window is None else context_window
        self.keep_chunk_files = settings.KEEP_CHUNK_FILES if keep_chunk_files is None else keep_chunk_files

    def transcribe(
        self,
        audio_path: Path,
        options: Optional[TranscriptionOptions] = None,
    ) -> TranscriptionResult:
        """
        Transcribe a file, splitting it first when it exceeds backend limits.

        Args:
            audio_path: Audio file.
            options: Request options; ``chunk_seconds`` overrides the chunk length
                and ``output_dir`` enables the JSON sidecar.

        Returns:
            TranscriptionResult whose duration is that of the original file.

        Raises:
            ProbeError: If the file cannot be probed.
            TranscriptionError: If the file cannot be transcribed at all.
        """
        audio_path = Path(audio_path)
        options = options or TranscriptionOptions()
        self._validate_options(options)

        if not audio_path.is_file():
            raise TranscriptionError(f"Audio file not found: {audio_path}")

        metadata = self.prober.probe(audio_path)
        size_bytes = audio_path.stat().st_size
        logger.info(
            "Audio file %s: %.2f MB, %.1f sec",
            audio_path.name, size_bytes / (1024 * 1024), metadata.duration_seconds
        )

        plan = plan_chunks(
            size_bytes,
            metadata.duration_seconds,
            chunk_seconds=options.chunk_seconds or settings.DEFAULT_CHUNK_SECONDS,
            max_upload_bytes=settings.MAX_UPLOAD_BYTES,
            max_inline_seconds=settings.MAX_INLINE_SECONDS,
        )

        if plan.split:
            logger.info("Processing in chunks: %s", plan.reason)
            result = self.transcribe_in_chunks(audio_path, options, metadata, plan)
        else:
            result = self.transcribe_single(audio_path, options, metadata)

        if options.output_dir:
            save_transcription(result, options.output_dir)

        return result

    def transcribe_single(
        self,
        audio_path: Path,
        options: Optional[TranscriptionOptions] = None,
        metadata: Optional[MediaMetadata] = None,
    ) -> TranscriptionResult:
        """
        Send one file to the backend in a single request.

        Args:
            audio_path: File within the backend limits.
            options: Request options.
            metadata: Probe result, probed here when omitted.

        Raises:
            ProbeError: If probing is needed and fails.
            TranscriptionError: If the backend call fails or the response is unusable.
        """
        audio_path = Path(audio_path)
        options = options or TranscriptionOptions()
        if metadata is None:
            metadata = self.prober.probe(audio_path)

        logger.info("Sending request to speech-to-text backend for %s", audio_path.name)
        if options.prompt:
            logger.debug("Prompt preview: %s", format_log_preview(options.prompt))

        start_time = time.monotonic()
        try:
            response = self.backend.transcribe(audio_path, options)
        except Exception as e:
            raise TranscriptionError(f"Failed to transcribe {audio_path}: {type(e).__name__}: {e}") from e
        processing_time = time.monotonic() - start_time

        logger.info("Transcription completed in %.2f seconds", processing_time)
        return self._normalize_response(response, audio_path, options, metadata, processing_time)

    def transcribe_in_chunks(
        self,
        audio_path: Path,
        options: Optional[TranscriptionOptions] = None,
        metadata: Optional[MediaMetadata] = None,
        plan: Optional[ChunkPlan] = None,
    ) -> TranscriptionResult:
        """
        Split a file and transcribe the chunks strictly in order.

        Each request after the first is prompted with the tail of the
        previous chunk's text. A failed chunk is logged and recorded as a
        gap; the run fails only if no chunk could be produced or none was
        transcribed.

        Raises:
            TranscriptionError: If splitting yields no chunks or every chunk fails.
        """
        audio_path = Path(audio_path)
        options = options or TranscriptionOptions()
        if metadata is None:
            metadata = self.prober.probe(audio_path)
        if plan is None:
            plan = plan_chunks(
                audio_path.stat().st_size,
                metadata.duration_seconds,
                chunk_seconds=options.chunk_seconds or settings.DEFAULT_CHUNK_SECONDS,
            )

        chunk_dir = Path(tempfile.mkdtemp(prefix=f"{audio_path.stem}_chunks_{short_id()}_", dir=settings.TEMP_DIR))
        try:
            try:
                chunks = self.transcoder.split_audio_file(
                    audio_path,
                    plan.chunk_seconds,
                    ConversionOptions(output_dir=chunk_dir),
                )
            except ConversionError as e:
                raise TranscriptionError(f"Failed to split {audio_path} into chunks: {e}") from e

            if not chunks:
                raise TranscriptionError(f"Failed to split {audio_path} into chunks: no chunk files produced")

            logger.info("Split audio into %d chunks", len(chunks))
            state = self._fold_chunks(chunks, options, metadata.duration_seconds, plan)
        finally:
            if not self.keep_chunk_files:
                shutil.rmtree(chunk_dir, ignore_errors=True)

        if state.succeeded == 0:
            raise TranscriptionError(f"All {len(state.outcomes)} chunks of {audio_path} failed to transcribe")

        merged = merge_transcriptions(
            state.outcomes,
            source_file=str(audio_path),
            duration_seconds=metadata.duration_seconds,
        )
        # A lone chunk comes back from the merger as is, still naming the chunk file.
        merged = replace(merged, source_file=str(audio_path), duration_seconds=metadata.duration_seconds)
        logger.info(
            "Chunked transcription finished: %d segments, %d/%d chunks transcribed",
            len(merged.segments), state.succeeded, len(state.outcomes)
        )
        return merged

    def _fold_chunks(
        self,
        chunks: List[AudioChunk],
        options: TranscriptionOptions,
        total_duration: float,
        plan: ChunkPlan,
    ) -> ChunkFoldState:
        """Run the chunk sequence, filling gaps for chunks the split dropped."""
        by_index = {chunk.index: chunk for chunk in chunks}
        expected = max(plan.expected_chunks, max(by_index) + 1)

        state = ChunkFoldState()
        for index in tqdm(range(expected), desc="Transcribing chunks", unit="chunk"):
            chunk = by_index.get(index)
            if chunk is None:
                logger.warning("Chunk %d/%d was not produced by the split", index + 1, expected)
                state.outcomes.append(
                    TranscriptionGap(
                        chunk_index=index,
                        duration_seconds=nominal_chunk_duration(index, plan.chunk_seconds, total_duration),
                        reason="chunk file not produced",
                    )
                )
                state.previous_text = None
                continue

            state = self._transcribe_next_chunk(state, chunk, options, expected)

            if index < expected - 1 and self.inter_chunk_delay > 0:
                time.sleep(self.inter_chunk_delay)

        return state

    def _transcribe_next_chunk(
        self,
        state: ChunkFoldState,
        chunk: AudioChunk,
        options: TranscriptionOptions,
        total_chunks: int,
    ) -> ChunkFoldState:
        """Fold step: transcribe one chunk with context from the previous one."""
        logger.info("Transcribing chunk %d/%d", chunk.index + 1, total_chunks)
        chunk_options = replace(
            options,
            prompt=build_context_prompt(state.previous_text, options.prompt, self.context_window),
        )

        try:
            result = self.transcribe_single(chunk.path, chunk_options)
        except (TranscriptionError, ProbeError) as e:
            logger.error("Error transcribing chunk %d/%d (%s): %s", chunk.index + 1, total_chunks, chunk.path.name, e)
            state.outcomes.append(
                TranscriptionGap(
                    chunk_index=chunk.index,
                    duration_seconds=chunk.duration_seconds,
                    reason=str(e),
                )
            )
            state.previous_text = None
            return state

        state.outcomes.append(result)
        state.succeeded += 1
        state.previous_text = result.text
        return state

    def _normalize_response(
        self,
        response: Any,
        audio_path: Path,
        options: TranscriptionOptions,
        metadata: MediaMetadata,
        processing_time: float,
    ) -> TranscriptionResult:
        """Convert any supported backend response shape into a TranscriptionResult."""
        duration = metadata.duration_seconds
        fallback_language = options.language or settings.DEFAULT_LANGUAGE

        if options.response_format == ResponseFormat.TEXT:
            text = response if isinstance(response, str) else _field(response, "text", "")
            return self._full_span_result(text or "", fallback_language, audio_path, duration, processing_time)

        if isinstance(response, str):
            try:
                response = json.loads(response)
            except json.JSONDecodeError as e:
                raise TranscriptionError(
                    f"Unparseable {options.response_format} response for {audio_path}: {e}"
                ) from e

        text = _field(response, "text")
        if text is None:
            raise TranscriptionError(f"Response for {audio_path} has no text field")
        language = _field(response, "language") or fallback_language
        raw_segments = _field(response, "segments") or []

        if not raw_segments:
            logger.warning("No segments in response for %s, creating single segment", audio_path.name)
            return self._full_span_result(text, language, audio_path, duration, processing_time)

        segments = self._convert_segments(raw_segments, audio_path)
        if not segments:
            logger.warning("No usable segments in response for %s, creating single segment", audio_path.name)
            return self._full_span_result(text, language, audio_path, duration, processing_time)

        logger.info("Detected language: %s, %d segments", language, len(segments))
        return TranscriptionResult(
            text=text,
            segments=segments,
            language=language,
            duration_seconds=duration,
            processing_time_seconds=processing_time,
            source_file=str(audio_path),
        )

    @staticmethod
    def _convert_segments(raw_segments: List[Any], audio_path: Path) -> List[TranscriptionSegment]:
        """
        Build segments from backend entries, numbered from 0.

        Entries with ``end <= start`` are dropped; their words stay in the
        result text. Non-numeric times make the whole response unusable.
        """
        segments: List[TranscriptionSegment] = []
        dropped = 0
        for seg in raw_segments:
            try:
                start = float(_field(seg, "start", 0.0))
                end = float(_field(seg, "end", 0.0))
                confidence = _field(seg, "confidence")
                confidence = float(confidence) if confidence is not None else DEFAULT_SEGMENT_CONFIDENCE
            except (TypeError, ValueError) as e:
                raise TranscriptionError(f"Malformed segment in response for {audio_path}: {e}") from e

            if end <= start:
                dropped += 1
                continue

            segments.append(
                TranscriptionSegment(
                    id=len(segments),
                    start=start,
                    end=end,
                    text=(_field(seg, "text", "") or "").strip(),
                    confidence=confidence,
                )
            )

        if dropped:
            logger.warning("Dropped %d segment(s) with end <= start from response for %s", dropped, audio_path.name)
        return segments

    @staticmethod
    def _full_span_result(
        text: str,
        language: str,
        audio_path: Path,
        duration: float,
        processing_time: float,
    ) -> TranscriptionResult:
        """
        One segment covering the whole file, for responses without segments.

        A file probed at zero length gets no segment; the text is kept.
        """
        segments = []
        if duration > 0:
            segments.append(TranscriptionSegment(id=0, start=0.0, end=duration, text=text.strip(), confidence=1.0))
        return TranscriptionResult(
            text=text,
            segments=segments,
            language=language,
            duration_seconds=duration,
            processing_time_seconds=processing_time,
            source_file=str(audio_path),
        )

    @staticmethod
    def _validate_options(options: TranscriptionOptions) -> None:
        if options.response_format not in ResponseFormat.ALL:
            raise ConfigurationError(
                f"Unsupported response format: {options.response_format}. "
                f"Supported: {', '.join(ResponseFormat.ALL)}"
            )


def prepare_audio_for_transcription(
    media_path: Path,
    transcoder: Optional[MediaTranscoder] = None,
    standardize: bool = True,
    output_dir: Optional[Path] = None,
) -> Path:
    """
    Produce an audio file ready for transcription.

    Video inputs have their audio track extracted; with ``standardize`` the
    speech preset (mono, 44.1 kHz, 128k, normalized, denoised) is applied.

    Raises:
        ProbeError: If the input cannot be probed.
        ConversionError: If the video has no audio track or FFmpeg fails.
    """
    media_path = Path(media_path)
    transcoder = transcoder or MediaTranscoder()
    options = ConversionOptions(output_dir=output_dir)

    metadata = transcoder.prober.probe(media_path)
    audio_path = media_path
    if isinstance(metadata, VideoMetadata):
        if not metadata.has_audio:
            raise ConversionError(f"Video has no audio track: {media_path}")
        audio_path = transcoder.extract_audio_from_video(media_path, options=options)

    if standardize:
        standardized = transcoder.standardize_audio(audio_path, options=options)
        if audio_path != media_path:
            audio_path.unlink(missing_ok=True)
        audio_path = standardized

    logger.info("Audio prepared for transcription: %s", audio_path)
    return audio_path


def save_transcription(result: TranscriptionResult, output_dir: Optional[Path] = None) -> Path:
    """
    Write a transcript as a JSON sidecar file.

    Args:
        result: Transcript to save.
        output_dir: Target directory (default: next to the source file).

    Returns:
        Path of the written file.
    """
    source = Path(result.source_file) if result.source_file else Path("transcript")
    output_dir = Path(output_dir) if output_dir else (source.parent if result.source_file else settings.OUTPUT_DIR)
    output_dir.mkdir(parents=True, exist_ok=True)

    output_path = output_dir / f"{source.stem}_transcript_{short_id()}.json"
    with open(output_path, "w", encoding="utf-8") as f:
        json.dump(result.to_dict(), f, ensure_ascii=False, indent=2)

    logger.info("Saved transcription to: %s", output_path)
    return output_path


def load_transcription(path: Path) -> TranscriptionResult:
    """Read a JSON sidecar written by save_transcription."""
    with open(path, "r", encoding="utf-8") as f:
        return TranscriptionResult.from_dict(json.load(f))
