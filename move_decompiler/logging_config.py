"""Logging helpers for per-run decompiler trace files."""

from __future__ import annotations

import logging
from pathlib import Path

__all__ = [
    "configure_debug_file_logger",
    "close_debug_logger",
]

_MARKER = "_decompiler_debug_trace"


def _drop_trace_handlers(logger: logging.Logger) -> None:
    for handler in list(logger.handlers):
        if getattr(handler, _MARKER, False):
            logger.removeHandler(handler)
            handler.close()


def configure_debug_file_logger(
    name: str,
    path: Path,
    *,
    level: int = logging.DEBUG,
    formatter: logging.Formatter | None = None,
) -> logging.Logger:
    """Return a logger writing trace lines to ``path``.

    Trace handlers installed by an earlier call on ``name`` are removed first,
    so a rerun replaces the previous trace rather than appending to it.  The
    file is written as UTF-8.
    """

    path.parent.mkdir(parents=True, exist_ok=True)
    logger = logging.getLogger(name)
    logger.setLevel(level)
    logger.propagate = False
    _drop_trace_handlers(logger)

    handler = logging.FileHandler(path, mode="w", encoding="utf-8")
    setattr(handler, _MARKER, True)
    handler.setFormatter(formatter or logging.Formatter("%(message)s"))
    logger.addHandler(handler)
    return logger


def close_debug_logger(logger: logging.Logger) -> None:
    """Tear down handlers installed by :func:`configure_debug_file_logger`."""

    _drop_trace_handlers(logger)
