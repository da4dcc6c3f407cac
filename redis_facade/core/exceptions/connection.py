"""
Connection-Level Exceptions

Errors surfaced by a single borrowed connection.
"""

from redis_facade.core.exceptions.base import CacheLayerError


class ConnectionBrokenError(CacheLayerError):
    """
    Raised on transport failure on a borrowed connection.

    Common causes:
    - Cache server is down or restarted
    - Socket timeout
    - Connection invalidated by a primary failover

    The connection is destroyed when it is returned to its pool.
    """

    retryable = True
