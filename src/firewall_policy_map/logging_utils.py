"""Logging helpers for the firewall policy map."""
from __future__ import annotations

import logging


_LEVEL_MAP = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "fatal": logging.CRITICAL,
    "critical": logging.CRITICAL,
}

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s - %(message)s"


def _resolve_level(level: str) -> int:
    """Return a logging level integer from a string."""
    normalized = (level or "info").strip().lower()
    if normalized not in _LEVEL_MAP:
        raise ValueError(f"Unsupported log level: {level}")
    return _LEVEL_MAP[normalized]


def _build_handler(log_file: str | None) -> logging.Handler:
    """Create the handler used for log output."""
    handler: logging.Handler
    if log_file:
        handler = logging.FileHandler(log_file, encoding="utf-8")
    else:
        handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    return handler


def configure_logging(level: str, log_file: str | None = None) -> logging.Handler:
    """Configure the root logger and return the handler that was installed."""
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(_resolve_level(level))
    handler = _build_handler(log_file)
    root_logger.addHandler(handler)
    return handler


def close_handler(handler: logging.Handler) -> None:
    """Detach and close a handler installed by configure_logging."""
    logging.getLogger().removeHandler(handler)
    handler.close()
