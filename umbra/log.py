"""Logging setup for the umbra CLI."""

from __future__ import annotations

import json
import logging
import os
import sys
from typing import Any

TEXT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}


class StructuredFormatter(logging.Formatter):
    """JSON formatter, one object per record."""

    def format(self, record: logging.LogRecord) -> str:
        data: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            data["exception"] = self.formatException(record.exc_info)
        return json.dumps(data)


def configure_logging(level: str = "info", fmt: str = "text") -> None:
    """Configure the root logger once per process.

    A non-empty ``DEBUG`` environment variable forces debug level.
    """
    resolved = logging.DEBUG if os.environ.get("DEBUG") else _LEVELS.get(level, logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    if fmt == "json":
        handler.setFormatter(StructuredFormatter(datefmt=DATE_FORMAT))
    else:
        handler.setFormatter(logging.Formatter(fmt=TEXT_FORMAT, datefmt=DATE_FORMAT))

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(resolved)
