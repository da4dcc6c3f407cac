"""
Connection Pool Exception Types.

Borrow-side failures: saturation, shutdown, cancellation and primary discovery.
"""

from redis_facade.core.exceptions.base import CacheLayerError


class PoolError(CacheLayerError):
    """Base exception for connection pool errors."""
    pass


class PoolExhaustedError(PoolError):
    """
    Raised when no connection could be borrowed.

    Either the pool is saturated and does not block, or the borrower waited
    the full maxWaitMillis without a connection being returned. Recoverable:
    the caller may retry later.
    """

    retryable = True

    def __init__(self, message: str | None = None, details: dict | None = None):
        super().__init__(
            message or "Connection pool exhausted",
            details=details,
        )


class PoolClosedError(PoolError):
    """Raised when borrowing from a pool that has been closed."""
    pass


class BorrowCancelledError(PoolError):
    """Raised when a borrower cancels while waiting for a connection."""
    pass


class NoPrimaryAvailableError(PoolError):
    """
    Raised when no arbiter can name a primary within the discovery window.

    Transient during failover.
    """

    retryable = True
