"""Logging setup shared by the CLI and the HTTP server."""

from __future__ import annotations

import logging
import sys

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str | int = "INFO", stream=None) -> None:
    """Configure the root logger with a single stream handler.

    Safe to call more than once; later calls replace the handler and level.
    """
    if isinstance(level, str):
        resolved = logging.getLevelName(level.upper())
        if not isinstance(resolved, int):
            resolved = logging.INFO
        level = resolved

    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        stream=stream or sys.stderr,
        force=True,
    )
