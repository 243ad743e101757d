"""
Application configuration.
"""
from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


# Speech-to-text backend limits.
WHISPER_MAX_UPLOAD_BYTES = 25 * 1024 * 1024  # Hard request payload limit.
WHISPER_MAX_INLINE_SECONDS = 600.0  # Longer files are chunked to bound per-call latency.
DEFAULT_CHUNK_SECONDS = 300.0
DEFAULT_SEGMENT_CONFIDENCE = 0.9
CONTEXT_WINDOW_CHARS = 100


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Paths.
    BASE_DIR: Path = Path(__file__).parent.parent
    OUTPUT_DIR: Path = BASE_DIR / "output"
    TEMP_DIR: Path = BASE_DIR / "temp"
    LOGS_DIR: Path = BASE_DIR / "logs"

    # API keys.
    OPENAI_API_KEY: str = ""

    # Speech-to-text.
    WHISPER_MODEL: str = "whisper-1"
    WHISPER_TEMPERATURE: float = 0.2
    WHISPER_RESPONSE_FORMAT: str = "verbose_json"
    DEFAULT_LANGUAGE: str = "en"
    API_TIMEOUT_SECONDS: float = 180.0

    # Chunking.
    MAX_UPLOAD_BYTES: int = WHISPER_MAX_UPLOAD_BYTES
    MAX_INLINE_SECONDS: float = WHISPER_MAX_INLINE_SECONDS
    DEFAULT_CHUNK_SECONDS: float = DEFAULT_CHUNK_SECONDS
    CONTEXT_WINDOW_CHARS: int = CONTEXT_WINDOW_CHARS
    INTER_CHUNK_DELAY_SECONDS: float = 1.0
    KEEP_CHUNK_FILES: bool = False

    # External media tools.
    FFMPEG_BINARY: str = "ffmpeg"
    FFPROBE_BINARY: str = "ffprobe"
    FFMPEG_TIMEOUT_SECONDS: float = 600.0

    # Diarization.
    DIARIZATION_BACKEND: str = "openai_api"
    DIARIZATION_MODEL: str = "gpt-4"
    OLLAMA_URL: str = "http://localhost:11434"

    # Logging configuration.
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        # Ensure all required directories exist.
        self.OUTPUT_DIR.mkdir(exist_ok=True, parents=True)
        self.TEMP_DIR.mkdir(exist_ok=True, parents=True)
        self.LOGS_DIR.mkdir(exist_ok=True, parents=True)


# Global settings instance.
settings = Settings()


class AudioFormat:
    """Audio containers the transcoder can produce."""
    MP3 = "mp3"
    WAV = "wav"
    AAC = "aac"
    FLAC = "flac"
    OGG = "ogg"

    ALL = [MP3, WAV, AAC, FLAC, OGG]


class ResponseFormat:
    """Speech-to-text response formats understood by the orchestrator."""
    TEXT = "text"
    JSON = "json"
    VERBOSE_JSON = "verbose_json"

    ALL = [TEXT, JSON, VERBOSE_JSON]


class ReasoningOptions:
    """Available reasoning backends for diarization."""
    OLLAMA = "ollama"
    OPENAI_API = "openai_api"

    ALL = [OLLAMA, OPENAI_API]
