#!/usr/bin/env python3
"""
Structured Logging for the Cache Access Layer

Every pool, arbiter, shard and executor event is a structlog event with a
`stage` field (POOL.*, ARBITER.*, SHARD.*, EXEC.*, BOOT.*). Events also
carry:
- `thread_id`: caller-supplied correlation id (context variable)
- `worker`: name of the OS thread that emitted the event, since borrowers,
  the failover listener and pool refill run on different threads
- an upper-case `level` and a UTC ISO timestamp

Credentials never reach the output: `password=`/`requirepass` fragments and
`redis://user:secret@` URLs in messages are masked, as are fields named
like a credential at the top level or inside a `details` dict.

Author: System Architect
Date: 2026-10-19
"""

import logging
import re
import sys
import threading
from contextvars import ContextVar

import structlog
from structlog.types import EventDict, WrappedLogger

from redis_facade.core.config.settings import get_settings

thread_id_ctx: ContextVar[str | None] = ContextVar("thread_id", default=None)

REDACTED = "[REDACTED]"

_MESSAGE_SECRETS = (
    (re.compile(r"(password\s*[=:]\s*)\S+", re.IGNORECASE), r"\1" + REDACTED),
    (re.compile(r"(requirepass\s+)\S+", re.IGNORECASE), r"\1" + REDACTED),
    (re.compile(r"(redis://[^:/@]*:)[^@]+(@)"), r"\1" + REDACTED + r"\2"),
)
_SECRET_FIELDS = frozenset({"password", "passwords", "auth", "requirepass"})


def add_thread_id(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Attach the caller's correlation id, when one is set."""
    thread_id = thread_id_ctx.get()
    if thread_id:
        event_dict["thread_id"] = thread_id
    return event_dict


def add_worker(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    event_dict.setdefault("worker", threading.current_thread().name)
    return event_dict


def add_log_level_name(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    if "level" in event_dict:
        event_dict["level"] = event_dict["level"].upper()
    return event_dict


def _mask_fields(fields: dict) -> dict:
    return {k: REDACTED if k.lower() in _SECRET_FIELDS else v for k, v in fields.items()}


def redact_credentials(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """
    Mask credentials in the message and in credential-named fields.

    Examples:
        "AUTH failed password=hunter2" -> "AUTH failed password=[REDACTED]"
        "redis://app:secret@h:6379"    -> "redis://app:[REDACTED]@h:6379"
        details={"password": "pw"}     -> details={"password": "[REDACTED]"}
    """
    message = event_dict.get("event")
    if isinstance(message, str):
        for pattern, replacement in _MESSAGE_SECRETS:
            message = pattern.sub(replacement, message)
        event_dict["event"] = message

    masked = _mask_fields(event_dict)
    if isinstance(masked.get("details"), dict):
        masked["details"] = _mask_fields(masked["details"])
    return masked


def setup_logging(log_level: str | None = None, log_format: str | None = None) -> None:
    """
    Configure structlog over stdlib logging.

    Args:
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL (default: LOG_LEVEL)
        log_format: 'json' or 'console' (default: LOG_FORMAT)
    """
    settings = get_settings()
    log_level = (log_level or settings.logging.LOG_LEVEL).upper()
    log_format = log_format or settings.logging.LOG_FORMAT

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=getattr(logging, log_level))

    renderer = (
        structlog.processors.JSONRenderer()
        if log_format == "json"
        else structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            add_thread_id,
            add_worker,
            structlog.processors.TimeStamper(fmt="iso", utc=True, key="timestamp"),
            structlog.stdlib.add_log_level,
            add_log_level_name,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            redact_credentials,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Usage:
        logger = get_logger(__name__)
        logger.info("Connection borrowed", stage="POOL.1", endpoint="localhost:6379")
    """
    return structlog.get_logger(name)


def set_thread_id(thread_id: str) -> None:
    """Set the correlation id for log events emitted from the current context."""
    thread_id_ctx.set(thread_id)


def get_thread_id() -> str | None:
    return thread_id_ctx.get()


def clear_thread_id() -> None:
    thread_id_ctx.set(None)
