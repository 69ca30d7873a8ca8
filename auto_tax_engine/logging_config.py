"""Console logging for the auto_tax_engine package, rendered with rich."""

from __future__ import annotations

import logging
import threading
from typing import Optional, Union

from rich.console import Console
from rich.logging import RichHandler

_LOGGER_PREFIX = "auto_tax_engine"
_lock = threading.Lock()
_configured = False


def _to_level(level: Union[int, str]) -> int:
    if isinstance(level, int):
        return level
    value = logging.getLevelName(level.strip().upper())
    if not isinstance(value, int):
        raise ValueError(f"Unknown log level: {level!r}")
    return value


def configure_logging(
    level: Union[int, str] = logging.WARNING,
    console: Optional[Console] = None,
    handler: Optional[logging.Handler] = None,
) -> logging.Logger:
    """Attach a handler to the package logger hierarchy (idempotent)."""
    global _configured
    package_logger = logging.getLogger(_LOGGER_PREFIX)
    package_logger.setLevel(_to_level(level))
    with _lock:
        if _configured:
            return package_logger
        _configured = True

    if handler is None:
        handler = RichHandler(
            console=console or Console(stderr=True),
            show_path=False,
            rich_tracebacks=True,
        )
        handler.setFormatter(logging.Formatter("%(message)s"))
    package_logger.addHandler(handler)
    package_logger.propagate = False
    return package_logger


def reset_logging() -> None:
    """Remove installed handlers. Used by tests."""
    global _configured
    with _lock:
        _configured = False
    package_logger = logging.getLogger(_LOGGER_PREFIX)
    package_logger.handlers.clear()
    package_logger.setLevel(logging.NOTSET)
    package_logger.propagate = True
