"""Logging setup for hosting applications."""

from __future__ import annotations

import logging
import sys
from typing import TextIO


class KeyValueFormatter(logging.Formatter):
    """Formats records as `key=value` pairs, appending any `extra_data` dict."""

    def format(self, record: logging.LogRecord) -> str:
        data = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        extra = getattr(record, "extra_data", None)
        if isinstance(extra, dict):
            data.update(extra)
        line = " ".join(f"{key}={value}" for key, value in data.items())
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(level: str = "INFO", *, stream: TextIO | None = None) -> logging.Logger:
    """Attach one key=value handler to the `crossdoc` logger tree.

    Called by the hosting application, usually with `EngineSettings.log_level`.
    Repeated calls only adjust the level.
    """

    logger = logging.getLogger("crossdoc")
    logger.setLevel(level.upper())
    if not any(getattr(handler, "_crossdoc", False) for handler in logger.handlers):
        handler = logging.StreamHandler(stream or sys.stdout)
        handler.setFormatter(KeyValueFormatter())
        handler._crossdoc = True  # type: ignore[attr-defined]
        logger.addHandler(handler)
    return logger
