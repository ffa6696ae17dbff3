"""
Structured Logging
==================

JSON-structured logging with correlation ID tracking.

Usage:
    from src.shared.infrastructure.logging import get_logger

    logger = get_logger(__name__)
    logger.info("Issue created", extra={"issue_id": issue.id})
"""

import logging
import sys
import time
from datetime import datetime, timezone
from typing import Any
from contextlib import contextmanager

from pythonjsonlogger import jsonlogger

_SENSITIVE_KEYS = ("password", "api_key", "authorization", "secret")

# Set once by setup_logging and stamped on every record
_environment = "unknown"


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """
    JSON formatter that stamps every record with a UTC timestamp,
    the environment and the correlation id, and masks secrets.
    """

    def add_fields(
        self,
        log_record: dict[str, Any],
        record: logging.LogRecord,
        message_dict: dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)

        if not log_record.get("timestamp"):
            log_record["timestamp"] = datetime.now(timezone.utc).isoformat()

        correlation_id = getattr(record, "correlation_id", None)
        if correlation_id:
            log_record["correlation_id"] = correlation_id

        log_record["environment"] = _environment

        for key, value in list(log_record.items()):
            lowered = key.lower()
            if any(marker in lowered for marker in _SENSITIVE_KEYS):
                log_record[key] = "***REDACTED***"
            elif "token" in lowered and "tokens" not in lowered:
                log_record[key] = "***REDACTED***"
            elif isinstance(value, (bytes, bytearray)):
                log_record[key] = f"<{len(value)} bytes>"


def setup_logging(
    level: str = "INFO",
    environment: str = "development",
) -> None:
    """
    Configure structured JSON logging for the application.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR)
        environment: Environment name for log context
    """
    global _environment
    _environment = environment

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(getattr(logging, level.upper()))
    handler.setFormatter(CustomJsonFormatter(
        fmt="%(asctime)s %(name)s %(levelname)s %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
    ))
    root_logger.addHandler(handler)

    # Silence noisy loggers
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("openai").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance with the given name."""
    return logging.getLogger(name)


class _ContextAdapter(logging.LoggerAdapter):
    """Adds bound context without dropping per-call ``extra`` fields."""

    def process(self, msg, kwargs):
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs


def get_context_logger(name: str, correlation_id: str | None = None) -> logging.Logger:
    """
    Get a logger bound to a request correlation ID.

    Args:
        name: Logger name
        correlation_id: Request correlation ID

    Returns:
        logging.Logger (or adapter) with correlation_id in extra
    """
    logger = get_logger(name)
    if correlation_id:
        logger = _ContextAdapter(logger, {"correlation_id": correlation_id})
    return logger


@contextmanager
def log_latency(logger: logging.Logger, operation: str, **extra_context: Any):
    """
    Context manager for measuring and logging operation latency.

    Usage:
        with log_latency(logger, "model_call", model="gemini-1.5-flash"):
            reply = await client.chat_completion(...)
    """
    start = time.perf_counter()
    outcome = "ok"
    try:
        yield
    except BaseException:
        outcome = "error"
        raise
    finally:
        latency_ms = (time.perf_counter() - start) * 1000
        logger.info(
            f"{operation} finished",
            extra={
                "operation": operation,
                "outcome": outcome,
                "latency_ms": round(latency_ms, 2),
                **extra_context,
            },
        )
