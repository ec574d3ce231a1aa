"""
Structured Logging
==================

JSON logs for the API process and the workflow runs it executes.

Every record is stamped with the correlation id of the HTTP request being
served (if any), so the "Workflow run enqueued" line of a ticket creation
shares its id with the request lines around it. Workflow handlers log
through `get_context_logger`, which adds run_id / function_id / attempt.

Usage:
    from ticketmate.shared.infrastructure.logging import get_logger

    logger = get_logger(__name__)
    logger.info("Ticket triaged", extra={"ticket_id": "..."})
"""

import logging
import sys
import time
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Iterator, Optional

from pythonjsonlogger import jsonlogger

REDACTED = "***REDACTED***"

_correlation_id: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)


def _is_sensitive(key: str) -> bool:
    lowered = key.lower()
    if any(marker in lowered for marker in ("password", "api_key", "secret", "signing_key", "event_key")):
        return True
    # max_tokens, prompt_tokens etc. are counters, not credentials
    return lowered in ("token", "access_token", "state") or lowered.endswith("_token")


def set_correlation_id(value: Optional[str]) -> Any:
    """Bind a correlation id to the current context; returns the reset token."""
    return _correlation_id.set(value)


def reset_correlation_id(token: Any) -> None:
    _correlation_id.reset(token)


def get_correlation_id() -> Optional[str]:
    return _correlation_id.get()


class CorrelationIdFilter(logging.Filter):
    """Copies the bound correlation id onto records that lack one."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not getattr(record, "correlation_id", None):
            correlation_id = _correlation_id.get()
            if correlation_id:
                record.correlation_id = correlation_id
        return True


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """
    JSON formatter adding timestamp, environment and correlation_id, and
    masking credential-looking string fields.
    """

    def __init__(self, *args: Any, environment: str = "unknown", **kwargs: Any):
        super().__init__(*args, **kwargs)
        self._environment = environment

    def add_fields(
        self,
        log_record: dict[str, Any],
        record: logging.LogRecord,
        message_dict: dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)

        log_record.setdefault("timestamp", datetime.now(timezone.utc).isoformat())
        log_record["level"] = record.levelname
        log_record["environment"] = self._environment

        correlation_id = getattr(record, "correlation_id", None)
        if correlation_id:
            log_record["correlation_id"] = correlation_id

        for key, value in list(log_record.items()):
            if isinstance(value, str) and _is_sensitive(key):
                log_record[key] = REDACTED


def setup_logging(level: str = "INFO", environment: str = "development") -> None:
    """
    Route the root logger to stdout as JSON.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR)
        environment: Environment name stamped on every record
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    handler.addFilter(CorrelationIdFilter())
    handler.setFormatter(CustomJsonFormatter(
        fmt="%(asctime)s %(name)s %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        environment=environment,
    ))
    root_logger.addHandler(handler)

    # Third-party chatter
    for noisy in ("uvicorn.access", "sqlalchemy.engine", "apscheduler", "httpx", "watchdog"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


class ContextLoggerAdapter(logging.LoggerAdapter):
    """LoggerAdapter that merges its context into each call's `extra`."""

    def process(self, msg: Any, kwargs: Any) -> tuple[Any, Any]:
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs


def get_context_logger(name: str, **context: Any) -> logging.LoggerAdapter:
    """
    Get a logger that stamps every record with the given context.

    Used by workflow runs so each line carries run_id / function_id.
    """
    return ContextLoggerAdapter(get_logger(name), context)


@contextmanager
def log_latency(logger: Any, operation: str, **extra_context: Any) -> Iterator[None]:
    """
    Log how long the wrapped block took, as `{operation} completed`.

    Usage:
        with log_latency(logger, "ticket_analysis", ticket_id=ticket_id):
            result = await classifier.analyze(...)
    """
    start = time.perf_counter()
    try:
        yield
    finally:
        logger.info(
            f"{operation} completed",
            extra={
                "operation": operation,
                "latency_ms": round((time.perf_counter() - start) * 1000, 2),
                **extra_context,
            },
        )
