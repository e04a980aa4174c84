import logging
import sys
from typing import Optional, TextIO


class PrettyFormatter(logging.Formatter):
    """Custom formatter with colors and level icons."""

    COLORS = {
        'DEBUG': '\033[36m',     # Cyan
        'INFO': '\033[32m',      # Green
        'WARNING': '\033[33m',   # Yellow
        'ERROR': '\033[31m',     # Red
        'CRITICAL': '\033[35m',  # Magenta
    }
    RESET = '\033[0m'
    BOLD = '\033[1m'

    ICONS = {
        'DEBUG': '🔍',
        'INFO': '✅',
        'WARNING': '⚠️ ',
        'ERROR': '❌',
        'CRITICAL': '🔥',
    }

    def __init__(self, use_color: bool = True):
        super().__init__()
        self.use_color = use_color

    def format(self, record):
        timestamp = self.formatTime(record, "%Y-%m-%d %H:%M:%S")
        message = record.getMessage()
        if record.exc_info:
            message = f"{message}\n{self.formatException(record.exc_info)}"

        if not self.use_color:
            return f"[{timestamp}] {record.levelname:<8} │ {record.name} │ {message}"

        color = self.COLORS.get(record.levelname, self.RESET)
        icon = self.ICONS.get(record.levelname, '')
        return (
            f"{self.BOLD}[{timestamp}]{self.RESET} "
            f"{color}{icon} {record.levelname:<8}{self.RESET} │ "
            f"{message}"
        )


def setup_logging(level: int = logging.INFO, stream: Optional[TextIO] = None) -> logging.Logger:
    """Attach a pretty console handler to the ``songstore`` logger (once)."""
    logger = logging.getLogger("songstore")
    logger.setLevel(level)

    stream = stream or sys.stdout
    if not any(getattr(h, "_songstore", False) for h in logger.handlers):
        handler = logging.StreamHandler(stream)
        handler.setFormatter(PrettyFormatter(use_color=stream.isatty()))
        handler._songstore = True
        logger.addHandler(handler)

    for h in logger.handlers:
        h.setLevel(level)
    return logger
