"""Custom exceptions for evidence-transcriber"""


class EvidenceTranscriberError(Exception):
    """Base exception for transcription pipeline errors"""
    pass


class ProbeError(EvidenceTranscriberError):
    """Media metadata could not be read"""
    pass


class ConversionError(EvidenceTranscriberError):
    """Transcode, extraction or split failed or produced no output"""
    pass


class TranscriptionError(EvidenceTranscriberError):
    """Speech-to-text call failed or returned unusable content"""
    pass


class DiarizationError(EvidenceTranscriberError):
    """Speaker attribution failed; never surfaced to callers"""
    pass


class ConfigurationError(EvidenceTranscriberError):
    """Configuration error"""
    pass


class BackendUnavailableError(EvidenceTranscriberError):
    """Calls refused while the circuit breaker is open"""
    pass
