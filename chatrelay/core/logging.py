# chatrelay/core/logging.py

import logging
import os
import sys
from typing import Optional, TextIO


DEFAULT_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

# Third-party loggers that are chatty at INFO
NOISY_LOGGERS = {
    "redis": logging.WARNING,
    "websockets": logging.WARNING,
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "uvicorn.access": logging.INFO,
}


def _resolve_level(level: Optional[str]) -> int:
    name = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    resolved = logging.getLevelName(name)
    return resolved if isinstance(resolved, int) else logging.INFO


def setup_logging(level: Optional[str] = None, stream: Optional[TextIO] = None) -> None:
    """
    Configure logging for the relay process.

    The level comes from ``level`` or the LOG_LEVEL env var (INFO if neither
    names a real level). Records go to stdout in the pipe-separated
    DEFAULT_FORMAT unless LOG_FORMAT overrides it. When Uvicorn (or a test
    runner) already installed handlers they are left alone and only the
    levels are adjusted, so calling this twice is harmless.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(_resolve_level(level))

    if not root_logger.handlers:
        handler = logging.StreamHandler(stream or sys.stdout)
        handler.setFormatter(logging.Formatter(os.getenv("LOG_FORMAT", DEFAULT_FORMAT)))
        root_logger.addHandler(handler)

    for name, noisy_level in NOISY_LOGGERS.items():
        logging.getLogger(name).setLevel(noisy_level)


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    Module logger, e.g. ``logger = get_logger(__name__)``.

    Handlers live on the root logger (see ``setup_logging``), so this is a
    plain ``logging.getLogger`` kept as the single import point.
    """
    return logging.getLogger(name)
