"""
Logging setup shared by the service and the CLI.
JSON records in production, human-readable lines in development. Logs go to
stderr so CLI output on stdout stays machine-readable.
"""

from __future__ import annotations

import logging
import sys

import json_log_formatter

from querymap.config import get_settings


class QueryMapJSONFormatter(json_log_formatter.JSONFormatter):
    """Adds logger name and level to every JSON record."""

    def json_record(self, message: str, extra: dict, record: logging.LogRecord) -> dict:
        extra = super().json_record(message, extra, record)
        extra["logger"] = record.name
        extra["level"] = record.levelname
        return extra


def setup_logging() -> None:
    """Configure logging based on environment."""
    settings = get_settings()
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    if settings.env == "production":
        handler.setFormatter(QueryMapJSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s [%(levelname)-8s] %(name)s: %(message)s",
            datefmt="%H:%M:%S",
        ))

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers = [handler]

    # Per-request client logs drown out the pipeline
    for noisy in ("httpx", "httpcore", "uvicorn.access"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
