"""
Speech-to-text backend backed by the OpenAI Whisper API.
"""
from pathlib import Path
from typing import Any, Optional

from .config import ResponseFormat, settings
from .exceptions import ConfigurationError
from .logger import logger
from .models import TranscriptionOptions
from .rate_limiter import RateLimiter, get_openai_rate_limiter
from .retry_handler import retry_api_call


class OpenAIWhisperBackend:
    """Upload audio files to the OpenAI transcription endpoint."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        client=None,
        rate_limiter: Optional[RateLimiter] = None,
    ):
        """
        Args:
            api_key: OpenAI key; defaults to settings.OPENAI_API_KEY.
            timeout: Per-request timeout in seconds.
            client: Preconfigured OpenAI client (tests).
            rate_limiter: Limiter shared with other OpenAI callers.
        """
        self.rate_limiter = rate_limiter or get_openai_rate_limiter()

        if client is not None:
            self.client = client
            return

        api_key = api_key or settings.OPENAI_API_KEY
        if not api_key:
            raise ConfigurationError(
                "OPENAI_API_KEY not found in environment variables. "
                "Please set it in your .env file or environment."
            )

        from openai import OpenAI

        self.client = OpenAI(api_key=api_key, timeout=timeout or settings.API_TIMEOUT_SECONDS)

    def transcribe(self, audio_path: Path, options: TranscriptionOptions) -> Any:
        """Send one file; returns the SDK response untouched."""
        params = {
            "model": options.model,
            "response_format": options.response_format,
            "temperature": options.temperature,
        }
        if options.language:
            params["language"] = options.language
        if options.prompt:
            params["prompt"] = options.prompt
        # Granularities are only accepted together with verbose_json.
        if options.timestamp_granularities and options.response_format == ResponseFormat.VERBOSE_JSON:
            params["timestamp_granularities"] = list(options.timestamp_granularities)

        self.rate_limiter.acquire()
        logger.info("Uploading %s to OpenAI (%s)...", Path(audio_path).name, options.model)
        return self._create_transcription(Path(audio_path), params)

    @retry_api_call(max_retries=3)
    def _create_transcription(self, audio_path: Path, params: dict) -> Any:
        # Reopened on every attempt so a retry uploads the file from the start.
        with open(audio_path, "rb") as audio_file:
            return self.client.audio.transcriptions.create(file=audio_file, **params)
