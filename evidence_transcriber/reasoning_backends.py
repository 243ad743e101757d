"""
LLM backends used for speaker attribution (OpenAI chat API or a local Ollama server).
"""
from typing import Optional

import requests

from .config import ReasoningOptions, settings
from .exceptions import ConfigurationError
from .logger import logger
from .rate_limiter import RateLimiter, get_openai_rate_limiter
from .retry_handler import retry_api_call


class OpenAIReasoningBackend:
    """Chat completions via the OpenAI API."""

    def __init__(
        self,
        model_name: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        client=None,
        rate_limiter: Optional[RateLimiter] = None,
    ):
        self.model_name = model_name or settings.DIARIZATION_MODEL
        self.rate_limiter = rate_limiter or get_openai_rate_limiter()

        if client is not None:
            self.client = client
            return

        api_key = api_key or settings.OPENAI_API_KEY
        if not api_key:
            raise ConfigurationError("OPENAI_API_KEY not found in environment variables")

        from openai import OpenAI

        self.client = OpenAI(api_key=api_key, timeout=timeout or settings.API_TIMEOUT_SECONDS)
        logger.info("OpenAI reasoning backend ready (%s)", self.model_name)

    @retry_api_call(max_retries=3)
    def complete(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        temperature: float = 0.2,
        max_tokens: Optional[int] = None
    ) -> str:
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        params = {
            "model": self.model_name,
            "messages": messages,
            "temperature": temperature,
        }
        if max_tokens:
            params["max_tokens"] = max_tokens

        self.rate_limiter.acquire()
        response = self.client.chat.completions.create(**params)
        return (response.choices[0].message.content or "").strip()


class OllamaReasoningBackend:
    """Completions from a local Ollama server."""

    def __init__(
        self,
        model_name: str = "qwen2.5:7b",
        ollama_url: Optional[str] = None,
        timeout: float = 300.0,
    ):
        self.model_name = model_name
        self.ollama_url = (ollama_url or settings.OLLAMA_URL).rstrip("/")
        self.api_endpoint = f"{self.ollama_url}/api/generate"
        self.timeout = timeout
        self._check_ollama_available()

    def _check_ollama_available(self):
        """Fail early when the server is down or the model is not pulled."""
        try:
            response = requests.get(f"{self.ollama_url}/api/tags", timeout=5)
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise ConfigurationError(
                f"Cannot connect to Ollama at {self.ollama_url}: {e}. Start it with: ollama serve"
            ) from e

        model_names = [m.get("name") for m in response.json().get("models", [])]
        if self.model_name not in model_names:
            raise ConfigurationError(
                f"Model '{self.model_name}' not found in Ollama. Run: ollama pull {self.model_name}"
            )
        logger.info("Ollama server available at %s (model %s)", self.ollama_url, self.model_name)

    @retry_api_call(max_retries=3)
    def complete(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        temperature: float = 0.2,
        max_tokens: Optional[int] = None
    ) -> str:
        payload = {
            "model": self.model_name,
            "prompt": prompt,
            "stream": False,
            "options": {"temperature": temperature},
        }
        if system_prompt:
            payload["system"] = system_prompt
        if max_tokens:
            payload["options"]["num_predict"] = max_tokens

        response = requests.post(self.api_endpoint, json=payload, timeout=self.timeout)
        response.raise_for_status()
        return response.json().get("response", "").strip()


def create_reasoning_backend(backend: Optional[str] = None, model_name: Optional[str] = None):
    """
    Build the configured reasoning backend.

    Args:
        backend: One of ReasoningOptions.ALL (default settings.DIARIZATION_BACKEND).
        model_name: Model override.

    Raises:
        ConfigurationError: For unknown backends or missing credentials.
    """
    backend = backend or settings.DIARIZATION_BACKEND
    if backend == ReasoningOptions.OPENAI_API:
        return OpenAIReasoningBackend(model_name=model_name)
    if backend == ReasoningOptions.OLLAMA:
        if model_name:
            return OllamaReasoningBackend(model_name=model_name)
        return OllamaReasoningBackend()
    raise ConfigurationError(
        f"Unsupported reasoning backend: {backend}. Supported: {', '.join(ReasoningOptions.ALL)}"
    )
