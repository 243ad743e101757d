"""
Speaker-attributed transcription pipeline for audio/video evidence files.
"""

__version__ = "1.0.0"
