"""Structured JSON logging utilities for event-based logging."""

import json
import logging
from datetime import datetime, timezone
from typing import Any


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        # Add event-specific fields if present
        if hasattr(record, "event_type"):
            log_data["event_type"] = record.event_type
        if hasattr(record, "event_data"):
            log_data.update(record.event_data)

        # Add exception info if present
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def log_sync_event(
    logger: logging.Logger,
    event: str,
    message: str,
    direction: str | None = None,
    chargepoint: str | None = None,
    level: int = logging.INFO,
    **kwargs: Any,
) -> None:
    """
    Log a synchronization event.

    Args:
        logger: Logger instance
        event: Event name (e.g., "accepted", "skipped", "dry_run")
        message: Human readable message
        direction: "download" or "upload" (if applicable)
        chargepoint: Chargepoint reference (if applicable)
        level: Log level, INFO by default
        **kwargs: Additional fields to include
    """
    event_data = {"event": event}

    if direction is not None:
        event_data["direction"] = direction
    if chargepoint is not None:
        event_data["chargepoint"] = chargepoint

    # Filter out None values from kwargs
    for key, value in kwargs.items():
        if value is not None:
            event_data[key] = value

    extra = {
        "event_type": "sync_event",
        "event_data": event_data,
    }
    logger.log(level, message, extra=extra)


def log_error(
    logger: logging.Logger,
    error_type: str,
    message: str,
    chargepoint: str | None = None,
    exc_info: Exception | None = None,
    **kwargs: Any,
) -> None:
    """
    Log an error event.

    Args:
        logger: Logger instance
        error_type: Type of error (e.g., "event_error", "plugin_error")
        message: Error message
        chargepoint: Chargepoint reference (if applicable)
        exc_info: Exception object (will extract traceback)
        **kwargs: Additional fields to include
    """
    event_data = {
        "error_type": error_type,
    }

    if chargepoint is not None:
        event_data["chargepoint"] = chargepoint

    # Filter out None values from kwargs
    for key, value in kwargs.items():
        if value is not None:
            event_data[key] = value

    extra = {
        "event_type": "error",
        "event_data": event_data,
    }
    logger.error(message, extra=extra, exc_info=exc_info)
