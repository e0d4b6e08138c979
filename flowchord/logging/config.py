"""Structured logging configuration."""
from __future__ import annotations

import json
import logging
import logging.config
from typing import Any

from flowchord.config import Settings, get_settings

LOG_FORMATS = ("text", "json", "rich")


class JsonFormatter(logging.Formatter):
    """One JSON object per line; the message and traceback are escaped."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "time": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


def build_logging_config(settings: Settings) -> dict[str, Any]:
    """Build a dictConfig mapping for the given settings."""
    log_format = settings.log_format if settings.log_format in LOG_FORMATS else "text"
    level = settings.log_level.upper()

    if log_format == "rich":
        console: dict[str, Any] = {
            "class": "rich.logging.RichHandler",
            "formatter": "rich",
            "rich_tracebacks": True,
            "show_path": False,
        }
    else:
        console = {
            "class": "logging.StreamHandler",
            "stream": "ext://sys.stdout",
            "formatter": log_format,
        }

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "text": {
                "format": "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
            "json": {
                "()": JsonFormatter,
                "datefmt": "%Y-%m-%dT%H:%M:%S",
            },
            "rich": {
                "format": "%(name)s: %(message)s",
                "datefmt": "[%X]",
            },
        },
        "handlers": {
            "console": console,
        },
        "root": {
            "level": level,
            "handlers": ["console"],
        },
        "loggers": {
            "sqlalchemy.engine": {"level": "WARNING"},
            "httpx": {"level": "WARNING"},
            "flowchord": {"level": level},
        },
    }


def setup_logging(settings: Settings | None = None) -> None:
    """Configure logging based on settings."""
    logging.config.dictConfig(build_logging_config(settings or get_settings()))
