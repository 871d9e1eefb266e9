"""
Structured Logging
==================

JSON logs for the automation service.

Every record carries the correlation id of the request that caused it.
Automation tasks are spawned from the request's context, so workflow,
assignment and SLA logs written in the background share the request's
correlation id and also name the automation task they belong to.

Usage:
    from ticket_automation.shared.infrastructure.logging import get_logger

    logger = get_logger(__name__)
    logger.info("SLA created", extra={"ticket_id": "..."})
"""

import logging
import sys
import time
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Iterator, Optional

from pythonjsonlogger import jsonlogger

DEAD_LETTER_LOGGER = "ticket_automation.dead_letter"

SENSITIVE_KEYS = ("token", "secret", "password", "api_key")
PHONE_KEYS = ("phone", "to")

correlation_id_var: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)
automation_task_var: ContextVar[Optional[str]] = ContextVar("automation_task", default=None)

_environment = "unknown"


def mask_phone(value: str) -> str:
    """Keep only the last four digits of a phone number."""
    if len(value) <= 4:
        return value
    return "*" * (len(value) - 4) + value[-4:]


class AutomationJsonFormatter(jsonlogger.JsonFormatter):
    """
    JSON formatter adding timestamp, environment, correlation id and the
    running automation task. Credentials are redacted and phone numbers
    masked before the record is written.
    """

    def add_fields(
        self,
        log_record: logging.LogRecord,
        record_dict: dict[str, Any],
        message_dict: dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record_dict, message_dict)

        if not record_dict.get("timestamp"):
            record_dict["timestamp"] = datetime.now(timezone.utc).isoformat()
        record_dict["environment"] = _environment

        correlation_id = correlation_id_var.get()
        if correlation_id and "correlation_id" not in record_dict:
            record_dict["correlation_id"] = correlation_id

        task = automation_task_var.get()
        if task and "task" not in record_dict:
            record_dict["task"] = task

        for key, value in list(record_dict.items()):
            if not isinstance(value, str):
                continue
            lowered = key.lower()
            if any(marker in lowered for marker in SENSITIVE_KEYS):
                record_dict[key] = "***REDACTED***"
            elif lowered in PHONE_KEYS:
                record_dict[key] = mask_phone(value)


def setup_logging(level: str = "INFO", environment: str = "development") -> None:
    """Route every logger to stdout as JSON."""
    global _environment
    _environment = environment

    log_level = getattr(logging, level.upper())
    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    handler.setFormatter(AutomationJsonFormatter(
        fmt="%(asctime)s %(name)s %(levelname)s %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
    ))
    root_logger.addHandler(handler)

    for noisy in ("uvicorn.access", "sqlalchemy.engine", "apscheduler", "httpx"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


@contextmanager
def bind_correlation_id(correlation_id: str) -> Iterator[str]:
    """Attach a correlation id to every log record written in this context."""
    token = correlation_id_var.set(correlation_id)
    try:
        yield correlation_id
    finally:
        correlation_id_var.reset(token)


@contextmanager
def automation_task(name: str) -> Iterator[None]:
    """Tag log records with the automation task being run."""
    token = automation_task_var.set(name)
    try:
        yield
    finally:
        automation_task_var.reset(token)


@contextmanager
def log_latency(logger: logging.Logger, operation: str, **extra_context: Any):
    """
    Log how long the wrapped block took.

    Usage:
        with log_latency(logger, "sla_sweep"):
            await tracker.check_all_slas()
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
