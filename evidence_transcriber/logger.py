"""
Logging setup: colored console output plus a per-run log file.

Every record carries the name of the evidence file being processed
(``%(evidence)s``), so interleaved runs over several files stay traceable.
"""
import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime
from typing import Iterator, Optional

from .config import settings


LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - [%(evidence)s] %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

_current_evidence: ContextVar[str] = ContextVar("current_evidence", default="-")


class EvidenceContextFilter(logging.Filter):
    """Attach the evidence file of the current workflow to each record."""

    def filter(self, record):
        record.evidence = _current_evidence.get()
        return True


class ColoredFormatter(logging.Formatter):
    """Formatter that colors the level name for terminal output."""

    COLORS = {
        logging.DEBUG: '\033[36m',
        logging.INFO: '\033[32m',
        logging.WARNING: '\033[33m',
        logging.ERROR: '\033[31m',
        logging.CRITICAL: '\033[1;31m',
    }
    RESET = '\033[0m'

    def formatMessage(self, record):
        color = self.COLORS.get(record.levelno)
        if not color:
            return super().formatMessage(record)

        # Copy, the file handler formats the same record afterwards.
        colored = logging.makeLogRecord(record.__dict__)
        colored.levelname = f"{color}{record.levelname}{self.RESET}"
        return super().formatMessage(colored)


@contextmanager
def evidence_context(name: str) -> Iterator[None]:
    """Tag log records emitted inside the block with ``name``."""
    token = _current_evidence.set(name)
    try:
        yield
    finally:
        _current_evidence.reset(token)


def set_console_level(level: int) -> None:
    """Change the verbosity of terminal output."""
    for handler in logger.handlers:
        if getattr(handler, "is_console", False):
            handler.setLevel(level)
    if level < logger.level:
        logger.setLevel(level)


def setup_logger(name: str = "evidence_transcriber", log_file: Optional[str] = None) -> logging.Logger:
    """
    Configure the application logger.

    Args:
        name: Logger name.
        log_file: File name inside LOGS_DIR (default: timestamped per run).

    Returns:
        Configured logger instance.
    """
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, settings.LOG_LEVEL))

    # Already configured by an earlier import.
    if logger.handlers:
        return logger

    context_filter = EvidenceContextFilter()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.is_console = True
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(ColoredFormatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    console_handler.addFilter(context_filter)
    logger.addHandler(console_handler)

    log_file = log_file or f"transcriber_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log"
    file_handler = logging.FileHandler(settings.LOGS_DIR / log_file, encoding='utf-8')
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    file_handler.addFilter(context_filter)
    logger.addHandler(file_handler)

    return logger


# Global logger instance.
logger = setup_logger()
