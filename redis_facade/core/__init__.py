"""
Core Module

Foundational components: configuration, logging and exceptions.
"""

from .exceptions import (
    ArgumentOutOfRangeError,
    BorrowCancelledError,
    CacheLayerError,
    CommandFailedError,
    ConfigurationError,
    ConnectionBrokenError,
    CrossShardError,
    NoPrimaryAvailableError,
    PoolClosedError,
    PoolError,
    PoolExhaustedError,
)
from .logging import (
    clear_thread_id,
    get_logger,
    get_thread_id,
    set_thread_id,
    setup_logging,
)

__all__ = [
    "setup_logging",
    "get_logger",
    "set_thread_id",
    "get_thread_id",
    "clear_thread_id",
    "CacheLayerError",
    "ConfigurationError",
    "PoolError",
    "PoolExhaustedError",
    "PoolClosedError",
    "BorrowCancelledError",
    "NoPrimaryAvailableError",
    "ConnectionBrokenError",
    "ArgumentOutOfRangeError",
    "CrossShardError",
    "CommandFailedError",
]
