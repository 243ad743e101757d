"""
Main application module.
"""
import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .config import ReasoningOptions, ResponseFormat, settings
from .diarization import DiarizationPostProcessor
from .logger import evidence_context, logger, set_console_level
from .media_transcoder import MediaTranscoder
from .models import TranscriptionOptions, TranscriptionResult
from .reasoning_backends import create_reasoning_backend
from .retry_handler import log_api_stats
from .speech_backends import OpenAIWhisperBackend
from .transcriber import TranscriptionOrchestrator, prepare_audio_for_transcription, save_transcription
from .utils import format_log_preview, segments_to_text_with_timestamps


# Whisper only considers the final 224 tokens of a prompt.
MAX_PROMPT_LENGTH = 800


def load_prompt_from_file(prompt_file_path: str) -> str:
    """
    Load a transcription prompt from a text file.

    Args:
        prompt_file_path: Path to the prompt file.

    Returns:
        Prompt text trimmed to the backend limit.
    """
    try:
        with open(prompt_file_path, 'r', encoding='utf-8') as f:
            prompt = f.read().strip()
    except FileNotFoundError:
        logger.error("Prompt file not found: %s", prompt_file_path)
        sys.exit(1)
    except OSError as e:
        logger.error("Failed to read prompt file: %s", e)
        sys.exit(1)

    if len(prompt) > MAX_PROMPT_LENGTH:
        logger.warning("Prompt loaded from file is too long (%d chars), trimming to %d", len(prompt), MAX_PROMPT_LENGTH)
        prompt = prompt[:MAX_PROMPT_LENGTH]

    logger.info("Loaded custom prompt from file (%d chars)", len(prompt))
    logger.debug("Prompt preview (first 80 chars): %s", format_log_preview(prompt))
    return prompt


def print_help():
    """Print CLI usage instructions."""
    help_text = """
Evidence Transcriber
====================

Usage:
    evidence-transcriber INPUT [INPUT ...] [OPTIONS]

Examples:
    # Transcribe an interview recording
    evidence-transcriber interview.mp3

    # Transcribe a body-cam video with speaker labels for two speakers
    evidence-transcriber bodycam.mp4 --standardize --diarize --speakers 2

    # Use a local Ollama model for speaker attribution
    evidence-transcriber call.wav --diarize --reasoning-backend ollama --reasoning-model qwen2.5:7b

    # Guide the transcription with a glossary of names and places
    evidence-transcriber interview.mp3 --prompt-file names.txt --language en

Options:
    --language CODE           Spoken language (ISO-639-1, default: auto-detect)
    --prompt-file PATH        Text file with a prompt for the first request
    --response-format FMT     text | json | verbose_json (default: verbose_json)
    --chunk-seconds N         Chunk length for long files (default: 300)
    --standardize             Convert to mono 44.1 kHz, normalized and denoised first
    --diarize                 Attribute segments to speakers
    --speakers N              Expected number of speakers (hint for --diarize)
    --reasoning-backend NAME  ollama | openai_api (default: openai_api)
    --reasoning-model NAME    Model for speaker attribution (default: gpt-4)
    --output-dir PATH         Directory for transcript files (default: next to the input)
    --keep-chunks             Do not delete intermediate chunk files
    --verbose, -v             Show debug output in the terminal
    --help, -h                Show this help message

Environment (.env):
    OPENAI_API_KEY            Required for transcription and the openai_api backend
    OLLAMA_URL                Ollama server (default: http://localhost:11434)
    LOG_LEVEL                 DEBUG | INFO | WARNING | ERROR
"""
    print(help_text)


def validate_args(args) -> bool:
    """
    Validate CLI arguments.

    Args:
        args: Parsed argparse namespace.

    Returns:
        True if validation succeeded.
    """
    if not args.inputs:
        logger.error("At least one input file is required")
        return False

    for input_path in args.inputs:
        if not Path(input_path).is_file():
            logger.error("Input file not found: %s", input_path)
            return False

    if args.chunk_seconds is not None and args.chunk_seconds <= 0:
        logger.error("--chunk-seconds must be positive")
        return False

    if args.speakers is not None:
        if args.speakers < 1:
            logger.error("--speakers must be at least 1")
            return False
        if not args.diarize:
            logger.warning("--speakers has no effect without --diarize")

    return True


def process_file(
    input_path: Path,
    orchestrator: TranscriptionOrchestrator,
    options: TranscriptionOptions,
    standardize: bool = False,
    diarizer: Optional[DiarizationPostProcessor] = None,
    speaker_count: Optional[int] = None,
    output_dir: Optional[Path] = None,
) -> TranscriptionResult:
    """
    Run the full pipeline for one evidence file.

    Args:
        input_path: Audio or video file.
        orchestrator: Configured transcription orchestrator.
        options: Transcription options.
        standardize: Apply the speech preset before transcription.
        diarizer: Speaker attribution step (skipped when None).
        speaker_count: Speaker count hint for the diarizer.
        output_dir: Where to write the transcript sidecar.

    Returns:
        Final transcript.
    """
    logger.info("=" * 60)
    logger.info("Processing %s", input_path.name)
    logger.info("=" * 60)

    logger.info("[1/3] Preparing audio...")
    audio_path = prepare_audio_for_transcription(
        input_path,
        transcoder=orchestrator.transcoder,
        standardize=standardize,
        output_dir=settings.TEMP_DIR,
    )

    logger.info("[2/3] Transcribing...")
    try:
        result = orchestrator.transcribe(audio_path, options)
    finally:
        if audio_path != input_path and not orchestrator.keep_chunk_files:
            audio_path.unlink(missing_ok=True)

    if audio_path != input_path:
        # Report the evidence file, not the intermediate audio.
        result.source_file = str(input_path)

    if diarizer is not None:
        logger.info("[3/3] Attributing speakers...")
        result = diarizer.diarize(result, speaker_count=speaker_count)
    else:
        logger.info("[3/3] Speaker attribution skipped")

    save_transcription(result, output_dir)

    if result.gaps:
        logger.warning(
            "%d chunk(s) could not be transcribed: %s",
            len(result.gaps),
            ", ".join(f"{g.start:.0f}-{g.end:.0f}s" for g in result.gaps),
        )

    return result


def main(argv: Optional[List[str]] = None):
    """Application entry point."""
    parser = argparse.ArgumentParser(
        description="Evidence Transcriber",
        add_help=False
    )

    parser.add_argument('inputs', nargs='*', help='Audio or video evidence files')

    # Transcription options.
    parser.add_argument('--language', type=str, help='Spoken language (ISO-639-1)')
    parser.add_argument('--prompt-file', type=str, help='Path to a prompt file')
    parser.add_argument('--response-format', type=str, choices=ResponseFormat.ALL,
                        default=settings.WHISPER_RESPONSE_FORMAT, help='Backend response format')
    parser.add_argument('--chunk-seconds', type=float, help='Chunk length for long files')
    parser.add_argument('--standardize', action='store_true', help='Apply the speech preset first')
    parser.add_argument('--output-dir', type=str, help='Directory for transcript files')
    parser.add_argument('--keep-chunks', action='store_true', help='Keep intermediate chunk files')

    # Diarization options.
    parser.add_argument('--diarize', action='store_true', help='Attribute segments to speakers')
    parser.add_argument('--speakers', type=int, help='Expected number of speakers')
    parser.add_argument('--reasoning-backend', type=str, choices=ReasoningOptions.ALL,
                        default=settings.DIARIZATION_BACKEND, help='Backend for speaker attribution')
    parser.add_argument('--reasoning-model', type=str, help='Model for speaker attribution')

    parser.add_argument('--verbose', '-v', action='store_true', help='Show debug output in the terminal')
    parser.add_argument('--help', '-h', action='store_true', help='Show this help message')

    args = parser.parse_args(argv)

    # Show help when explicitly requested or no inputs were provided.
    if args.help or not args.inputs:
        print_help()
        sys.exit(0)

    if not validate_args(args):
        sys.exit(1)

    if args.verbose:
        set_console_level(logging.DEBUG)

    failed = []
    try:
        prompt = load_prompt_from_file(args.prompt_file) if args.prompt_file else None
        output_dir = Path(args.output_dir) if args.output_dir else None

        options = TranscriptionOptions(
            language=args.language,
            prompt=prompt,
            response_format=args.response_format,
            chunk_seconds=args.chunk_seconds,
        )

        orchestrator = TranscriptionOrchestrator(
            OpenAIWhisperBackend(),
            transcoder=MediaTranscoder(),
            keep_chunk_files=args.keep_chunks or None,
        )

        diarizer = None
        if args.diarize:
            diarizer = DiarizationPostProcessor(
                create_reasoning_backend(args.reasoning_backend, args.reasoning_model)
            )

        for input_path in args.inputs:
            try:
                with evidence_context(Path(input_path).name):
                    result = process_file(
                        Path(input_path),
                        orchestrator,
                        options,
                        standardize=args.standardize,
                        diarizer=diarizer,
                        speaker_count=args.speakers,
                        output_dir=output_dir,
                    )
            except Exception as e:
                logger.error("Failed to process %s: %s", input_path, e, exc_info=True)
                failed.append(input_path)
                continue

            print()
            print(segments_to_text_with_timestamps(result.segments))

    except KeyboardInterrupt:
        logger.info("\nProcessing interrupted by user")
        sys.exit(1)
    except Exception as e:
        logger.error("An error occurred: %s", e, exc_info=True)
        sys.exit(1)
    finally:
        log_api_stats()

    if failed:
        logger.error("%d of %d file(s) failed: %s", len(failed), len(args.inputs), ", ".join(failed))
        sys.exit(1)

    logger.info("All %d file(s) processed successfully", len(args.inputs))


if __name__ == "__main__":
    main()
