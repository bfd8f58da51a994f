"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Logging setup for the server process.

stdout carries the JSON-RPC stream, so every log record goes to stderr.
"""

from __future__ import annotations

import logging
import sys
from typing import TextIO

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

_LEVELS = {
    "error": logging.ERROR,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
}


def resolve_level(level: str | int) -> int:
    if isinstance(level, int):
        return level
    return _LEVELS.get(level.strip().lower(), logging.INFO)


def configure_logging(level: str | int = "info", *, stream: TextIO | None = None) -> logging.Logger:
    """Attach one stderr handler to the ``dockhub`` logger tree."""
    root = logging.getLogger("dockhub")
    root.setLevel(resolve_level(level))
    for handler in list(root.handlers):
        if getattr(handler, "_dockhub", False):
            root.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler._dockhub = True  # type: ignore[attr-defined]
    root.addHandler(handler)
    root.propagate = False

    # httpx logs every request at INFO, including full URLs.
    logging.getLogger("httpx").setLevel(logging.WARNING)
    return root
