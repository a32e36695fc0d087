"""Logging setup: one Rich console handler on the root logger."""

from __future__ import annotations

import logging
from typing import Final

from rich.logging import RichHandler

_DEFAULT_LEVEL: Final[str] = "INFO"
_FORMAT: Final[str] = "%(message)s"
_DATE_FORMAT: Final[str] = "[%X]"

# httpx logs every request at INFO; yfinance is chatty at DEBUG.
_NOISY_LOGGERS: Final[tuple[str, ...]] = ("httpx", "httpcore", "yfinance", "urllib3")

_configured: bool = False


def _resolve_level(level: str | None) -> int:
    if level is None:
        # Deferred import: app.config must stay importable without logging.
        from app.config import load_config

        level = str(load_config().get("log_level") or _DEFAULT_LEVEL)
    return getattr(logging, level.upper(), logging.INFO)


def setup_logging(level: str | None = None) -> None:
    """Attach a :class:`RichHandler` to the root logger once per process.

    Args:
        level: Log level name.  Defaults to ``log_level`` from config
               (which ``SCREENER_LOG_LEVEL`` overrides), then INFO.
    """
    global _configured
    if _configured:
        return

    resolved_level = _resolve_level(level)

    handler = RichHandler(
        level=resolved_level,
        show_path=False,
        rich_tracebacks=True,
        tracebacks_show_locals=False,
    )
    handler.setFormatter(logging.Formatter(_FORMAT, datefmt=_DATE_FORMAT))

    root = logging.getLogger()
    root.setLevel(resolved_level)
    root.addHandler(handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(resolved_level, logging.WARNING))

    _configured = True


def get_logger(name: str) -> logging.Logger:
    """Return ``logging.getLogger(name)`` after making sure logging is set up."""
    setup_logging()
    return logging.getLogger(name)
