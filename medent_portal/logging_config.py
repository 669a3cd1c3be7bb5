"""
Logging configuration module for the portal.

Provides centralized logging setup with request tracing. Every record carries
the request ID of the browser request that produced it, and structured fields
passed via ``extra={"extra_fields": {...}}`` are scrubbed of credentials and
card data before they are written.
"""

import json
import logging
import sys
from contextvars import ContextVar
from typing import Any, Dict, Optional
from uuid import uuid4

request_id_context: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
user_id_context: ContextVar[Optional[str]] = ContextVar("user_id", default=None)

SENSITIVE_KEYS = frozenset(
    {
        "password",
        "old_password",
        "new_password",
        "token",
        "access_token",
        "accessToken",
        "refresh_token",
        "refreshToken",
        "authorization",
        "Authorization",
        "x-api-key",
        "cardNumber",
        "card_number",
        "cvv",
        "signature",
    }
)


def scrub(fields: Dict[str, Any]) -> Dict[str, Any]:
    """
    Mask values of sensitive keys, recursing into nested dictionaries.

    Args:
        fields: Structured log fields

    Returns:
        Copy of the fields with sensitive values replaced by ``***``
    """
    cleaned: Dict[str, Any] = {}
    for key, value in fields.items():
        if key in SENSITIVE_KEYS and value:
            cleaned[key] = "***"
        elif isinstance(value, dict):
            cleaned[key] = scrub(value)
        else:
            cleaned[key] = value
    return cleaned


class StructuredFormatter(logging.Formatter):
    """
    Log formatter that outputs one JSON object per record.

    Includes request and user IDs from context for tracing.
    """

    def format(self, record: logging.LogRecord) -> str:
        """
        Format log record as JSON with structured fields.

        Args:
            record: Log record to format

        Returns:
            JSON-formatted log string
        """
        log_data: Dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        request_id = request_id_context.get()
        if request_id:
            log_data["request_id"] = request_id

        user_id = user_id_context.get()
        if user_id:
            log_data["user_id"] = user_id

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if hasattr(record, "extra_fields"):
            log_data.update(scrub(record.extra_fields))

        return json.dumps(log_data, ensure_ascii=False, default=str)


class HumanReadableFormatter(logging.Formatter):
    """Coloured single-line formatter for development."""

    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
        "RESET": "\033[0m",
    }

    def format(self, record: logging.LogRecord) -> str:
        """
        Format log record with colors, request ID and structured fields.

        Args:
            record: Log record to format

        Returns:
            Formatted log string with colors
        """
        request_id = request_id_context.get()
        color = self.COLORS.get(record.levelname, self.COLORS["RESET"])
        reset = self.COLORS["RESET"]

        log_parts = [
            f"{color}{record.levelname:8}{reset}",
            f"[{record.name}]",
        ]

        if request_id:
            log_parts.append(f"[req:{request_id[:8]}]")

        log_parts.extend(
            [
                f"[{record.filename}:{record.lineno}]",
                record.getMessage(),
            ]
        )

        if hasattr(record, "extra_fields") and record.extra_fields:
            pairs = " ".join(
                f"{key}={value}" for key, value in scrub(record.extra_fields).items()
            )
            log_parts.append(f"| {pairs}")

        message = " ".join(log_parts)

        if record.exc_info:
            message += f"\n{self.formatException(record.exc_info)}"

        return message


def setup_logging(
    log_level: str = "INFO",
    service_name: str = "medent-portal",
    use_json: bool = False,
) -> logging.Logger:
    """
    Configure application logging.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        service_name: Name of the service for log identification
        use_json: Use JSON structured logging instead of human-readable format

    Returns:
        Configured logger instance
    """
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    formatter: logging.Formatter
    if use_json:
        formatter = StructuredFormatter(datefmt="%Y-%m-%d %H:%M:%S")
    else:
        formatter = HumanReadableFormatter(datefmt="%Y-%m-%d %H:%M:%S")

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(numeric_level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    # Reduce noise from third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

    logger = logging.getLogger(service_name)
    logger.setLevel(numeric_level)

    return logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Get a logger for a module (typically ``__name__``)."""
    return logging.getLogger(name or "medent-portal")


def set_request_id(request_id: Optional[str] = None) -> str:
    """
    Set request ID in context for distributed tracing.

    Args:
        request_id: Request ID to set, generates new UUID if None

    Returns:
        The request ID that was set
    """
    if request_id is None:
        request_id = str(uuid4())
    request_id_context.set(request_id)
    return request_id


def get_request_id() -> Optional[str]:
    """Get current request ID from context."""
    return request_id_context.get()


def set_user_id(user_id: Optional[str]) -> None:
    """Bind the signed-in user to the current context."""
    user_id_context.set(user_id)


def clear_request_id() -> None:
    """Clear request and user IDs from context."""
    request_id_context.set(None)
    user_id_context.set(None)
