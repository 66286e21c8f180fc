"""
MQTT Dialer - Structured Logging

Provides structured JSON logging with context injection for the MQTT client
id and topic. Phone numbers and credentials in structured data are masked.
"""

from __future__ import annotations

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Optional


# =============================================================================
# Context Variables
# =============================================================================

client_id_var: ContextVar[Optional[str]] = ContextVar('client_id', default=None)
topic_var: ContextVar[Optional[str]] = ContextVar('topic', default=None)


# =============================================================================
# Masking Utilities
# =============================================================================

SENSITIVE_KEYS = {
    'phone', 'number', 'password', 'username', 'token', 'secret',
}


def mask_client_id(cid: Optional[str]) -> Optional[str]:
    """Mask client ID to its last 4 characters."""
    if not cid:
        return None
    return f"***{cid[-4:]}" if len(cid) > 4 else "***"


def mask_sensitive_data(data: dict) -> dict:
    """
    Recursively mask sensitive fields in a dictionary.

    Sensitive fields: phone, phone_number, password, username, token, etc.
    """
    masked = {}
    for key, value in data.items():
        key_lower = key.lower()

        if any(s in key_lower for s in SENSITIVE_KEYS):
            if isinstance(value, str):
                masked[key] = f"***{value[-2:]}" if len(value) > 2 else "***"
            else:
                masked[key] = "[REDACTED]"
        elif isinstance(value, dict):
            masked[key] = mask_sensitive_data(value)
        else:
            masked[key] = value

    return masked


# =============================================================================
# Formatters
# =============================================================================

class StructuredFormatter(logging.Formatter):
    """
    JSON formatter that injects context variables and masks sensitive data.

    Output format:
    {
        "timestamp": "2024-11-30T00:00:00.000Z",
        "level": "INFO",
        "logger": "module.submodule",
        "client_id": "***a1b2",
        "topic": "dialer/phone",
        "message": "Human-readable message",
        "data": { ... }
    }
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        client_id = client_id_var.get()
        if client_id:
            log_entry["client_id"] = mask_client_id(client_id)

        topic = topic_var.get()
        if topic:
            log_entry["topic"] = topic

        if hasattr(record, 'data') and record.data:
            log_entry["data"] = mask_sensitive_data(record.data)

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry)


class HumanReadableFormatter(logging.Formatter):
    """
    Human-readable formatter for development.
    Includes timestamp, level, logger, and message with context.
    """

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")

        context_parts = []

        client_id = client_id_var.get()
        if client_id:
            context_parts.append(f"client={mask_client_id(client_id)}")

        topic = topic_var.get()
        if topic:
            context_parts.append(f"topic={topic}")

        context_str = f" [{', '.join(context_parts)}]" if context_parts else ""

        message = f"{timestamp} | {record.levelname:<8} | {record.name}{context_str} | {record.getMessage()}"

        if hasattr(record, 'data') and record.data:
            message += f" | {json.dumps(mask_sensitive_data(record.data))}"

        if record.exc_info:
            message += "\n" + self.formatException(record.exc_info)

        return message


# =============================================================================
# Logger Setup
# =============================================================================

def setup_structured_logging(
    level: str = "INFO",
    json_format: bool = False,
) -> None:
    """
    Configure structured logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_format: Use JSON format (True for production, False for development)
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(getattr(logging, level.upper()))

    if json_format:
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(HumanReadableFormatter())

    root_logger.addHandler(handler)

    # paho logs every ping at DEBUG
    logging.getLogger("paho").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


# =============================================================================
# Context Managers
# =============================================================================

class LogContext:
    """
    Context manager for setting log context variables.

    Usage:
        with LogContext(client_id="mqtt_dialer_ab12", topic="dialer/phone"):
            logger.info("Message received")
    """

    def __init__(
        self,
        client_id: Optional[str] = None,
        topic: Optional[str] = None,
    ):
        self._client_id = client_id
        self._topic = topic
        self._tokens = []

    def __enter__(self):
        if self._client_id:
            self._tokens.append((client_id_var, client_id_var.set(self._client_id)))
        if self._topic:
            self._tokens.append((topic_var, topic_var.set(self._topic)))
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        for var, token in reversed(self._tokens):
            var.reset(token)
        self._tokens.clear()
        return False


# =============================================================================
# Structured Logger
# =============================================================================

class StructuredLogger:
    """
    Logger wrapper that supports structured data.

    Usage:
        logger = StructuredLogger(__name__)
        logger.info("Call requested", data={"phone_number": "+15551234567"})
    """

    def __init__(self, name: str):
        self._logger = logging.getLogger(name)

    def _log(self, level: int, message: str, data: Optional[dict] = None, **kwargs):
        extra = {}
        if data:
            extra['data'] = data

        self._logger.log(level, message, extra=extra, **kwargs)

    def debug(self, message: str, data: Optional[dict] = None, **kwargs):
        self._log(logging.DEBUG, message, data, **kwargs)

    def info(self, message: str, data: Optional[dict] = None, **kwargs):
        self._log(logging.INFO, message, data, **kwargs)

    def warning(self, message: str, data: Optional[dict] = None, **kwargs):
        self._log(logging.WARNING, message, data, **kwargs)

    def error(self, message: str, data: Optional[dict] = None, **kwargs):
        self._log(logging.ERROR, message, data, **kwargs)

    def exception(self, message: str, data: Optional[dict] = None, **kwargs):
        self._log(logging.ERROR, message, data, exc_info=True, **kwargs)


def get_logger(name: str) -> StructuredLogger:
    """Get a structured logger instance."""
    return StructuredLogger(name)
