"""
Protocol interfaces for external services.

The orchestrator and the diarization post-processor receive their backends
at construction time; tests pass fakes implementing the same protocols.
"""
from pathlib import Path
from typing import Any, Optional, Protocol

from .models import TranscriptionOptions


class SpeechToTextBackend(Protocol):
    """Protocol for speech-to-text services (OpenAI Whisper API, fakes)."""

    def transcribe(self, audio_path: Path, options: TranscriptionOptions) -> Any:
        """
        Transcribe one audio file.

        Args:
            audio_path: File to upload; must fit the backend payload limit.
            options: Model, language, prompt, temperature and response format.

        Returns:
            Raw text for the ``text`` response format, otherwise an object or
            dict with ``text``, ``language`` and ``segments``.
        """
        ...


class ReasoningBackend(Protocol):
    """Protocol for LLM services (Ollama, OpenAI API)"""

    def complete(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        temperature: float = 0.2,
        max_tokens: Optional[int] = None
    ) -> str:
        """
        Generate text completion from prompt.

        Args:
            prompt: User prompt
            system_prompt: System prompt (optional)
            temperature: Sampling temperature
            max_tokens: Maximum tokens to generate

        Returns:
            Generated text
        """
        ...
