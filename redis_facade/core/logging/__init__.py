"""structlog setup, correlation ids and credential redaction."""

from redis_facade.core.logging.logger import (
    clear_thread_id,
    get_logger,
    get_thread_id,
    set_thread_id,
    setup_logging,
)

__all__ = ["setup_logging", "get_logger", "set_thread_id", "get_thread_id", "clear_thread_id"]
