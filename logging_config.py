"""
Logging configuration for structured JSON logging.

Provides utilities for setting up JSON logging with per-session and per-flow
context, with different formats for development vs production environments.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Any, Optional

from pythonjsonlogger import jsonlogger

from constants import LOG_FORMAT_JSON, LOG_LEVEL_DEVELOPMENT, LOG_LEVEL_PRODUCTION


class ContextualJsonFormatter(jsonlogger.JsonFormatter):
    """
    JSON formatter that always emits timestamp, level and logger name.

    Fields passed through ``extra`` (session id, flow name, attempt counts)
    are emitted as top-level JSON keys.
    """

    def __init__(self, *args, rename_fields: Optional[dict] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.rename_fields = rename_fields or {}

    def add_fields(self, log_record: dict, record: logging.LogRecord, message_dict: dict) -> None:
        super().add_fields(log_record, record, message_dict)

        if not log_record.get("timestamp"):
            log_record["timestamp"] = self.formatTime(record, self.datefmt)
        if not log_record.get("level"):
            log_record["level"] = record.levelname
        if not log_record.get("logger"):
            log_record["logger"] = record.name

        for old_name, new_name in self.rename_fields.items():
            if old_name in log_record:
                log_record[new_name] = log_record.pop(old_name)


def setup_logging(use_json: Optional[bool] = None, log_level: Optional[str] = None) -> None:
    """
    Configure application logging with JSON or readable format.

    Args:
        use_json: If True, use JSON format. If None, reads LOG_FORMAT_JSON from
                  the environment and falls back to the constant.
        log_level: Logging level name. If None, DEBUG when ENV is dev/development,
                   INFO otherwise.
    """
    if use_json is None:
        use_json = os.getenv("LOG_FORMAT_JSON", str(LOG_FORMAT_JSON)).lower() in ("true", "1", "yes")

    if log_level is None:
        env = os.getenv("ENV", "production").lower()
        log_level = LOG_LEVEL_DEVELOPMENT if env in ("dev", "development") else LOG_LEVEL_PRODUCTION

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    if use_json:
        formatter = ContextualJsonFormatter(
            "%(timestamp)s %(level)s %(logger)s %(message)s",
            rename_fields={"timestamp": "@timestamp", "level": "severity"},
        )
    else:
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    handler.setFormatter(formatter)
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, log_level.upper()))

    # Provider SDKs log every HTTP request at INFO
    for noisy in ("httpx", "openai", "anthropic"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


class StructuredLoggerAdapter(logging.LoggerAdapter):
    """
    Logger adapter that adds session/flow context to every record.

    Usage:
        log = StructuredLoggerAdapter(logging.getLogger(__name__), {
            "session_id": context.session_id,
            "flow": "continue",
        })
        log.info_event("flow_completed", "Flow finished", duration_ms=412)
    """

    def process(self, msg: str, kwargs: dict) -> tuple[str, dict]:
        extra = kwargs.get("extra", {})
        extra.update(self.extra)
        kwargs["extra"] = extra
        return msg, kwargs

    def log_event(self, level: int, event_type: str, message: str, **context: Any) -> None:
        """
        Log a structured event with type and context.

        Args:
            level: Logging level (e.g., logging.INFO)
            event_type: Type of event (e.g., "flow_completed", "retry_scheduled")
            message: Human-readable message
            **context: Additional contextual key-value pairs
        """
        exc_info = context.pop("exc_info", None)
        context["event_type"] = event_type
        self.log(level, message, extra=context, exc_info=exc_info)

    def info_event(self, event_type: str, message: str, **context: Any) -> None:
        self.log_event(logging.INFO, event_type, message, **context)

    def error_event(self, event_type: str, message: str, **context: Any) -> None:
        self.log_event(logging.ERROR, event_type, message, **context)

    def warning_event(self, event_type: str, message: str, **context: Any) -> None:
        self.log_event(logging.WARNING, event_type, message, **context)

    def debug_event(self, event_type: str, message: str, **context: Any) -> None:
        self.log_event(logging.DEBUG, event_type, message, **context)


def get_context_logger(name: str, **context: Any) -> StructuredLoggerAdapter:
    """Return a StructuredLoggerAdapter for ``name`` carrying ``context``."""
    return StructuredLoggerAdapter(logging.getLogger(name), dict(context))
