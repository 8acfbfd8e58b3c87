"""
Logging setup for applications embedding couchview.

The package itself only creates module loggers; calling setup_logging()
is left to the application.
"""

from __future__ import annotations

import logging

import json_log_formatter

from .config import LoggingSettings


class JSONFormatter(json_log_formatter.JSONFormatter):
    """JSON formatter that also records the level and logger name."""

    def json_record(self, message, extra, record):
        extra = super().json_record(message, extra, record)
        extra["level"] = record.levelname
        extra["logger"] = record.name
        return extra


def setup_logging(settings: LoggingSettings | None = None) -> None:
    """Configure the root logger.

    Args:
        settings: Logging settings (loaded from env if not provided)
    """
    settings = settings or LoggingSettings()
    level = getattr(logging, settings.level.upper(), logging.INFO)

    if settings.format == "json":
        formatter: logging.Formatter = JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Reduce noise from libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
