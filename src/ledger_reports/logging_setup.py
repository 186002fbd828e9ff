"""Logging for the ``ledger_reports`` package.

``server.main`` calls ``configure_logging()`` once. Every other module asks
``get_logger(__name__)`` for a logger and leaves handlers alone. Output goes
to stderr because stdout carries the MCP stdio stream.
"""

import logging
import os
import sys
from typing import IO

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"
LEVEL_ENV = "LEDGER_REPORTS_LOG_LEVEL"

_ROOT = "ledger_reports"
_CONFIGURED = False


def _resolve_level(level: int | str | None) -> int:
    """Level number or name; None reads $LEDGER_REPORTS_LOG_LEVEL, unknown names mean INFO."""
    if level is None:
        level = os.getenv(LEVEL_ENV) or "INFO"
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.strip().upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def configure_logging(level: int | str | None = None, stream: IO[str] | None = None) -> None:
    """Send package records to stream (stderr by default). Later calls are ignored."""
    global _CONFIGURED
    if _CONFIGURED:
        return

    root = logging.getLogger(_ROOT)
    root.handlers = [h for h in root.handlers if not isinstance(h, logging.NullHandler)]

    handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)
    root.setLevel(_resolve_level(level))
    root.propagate = False
    _CONFIGURED = True


def get_logger(name: str) -> logging.Logger:
    root = logging.getLogger(_ROOT)
    if not _CONFIGURED and not root.handlers:
        root.addHandler(logging.NullHandler())
    return logging.getLogger(name)
