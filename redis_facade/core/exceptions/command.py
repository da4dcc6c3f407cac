"""
Command-Related Exceptions

Errors raised while routing or executing a single cache command.
"""

from redis_facade.core.exceptions.base import CacheLayerError


class ArgumentOutOfRangeError(CacheLayerError):
    """
    Raised for invalid command arguments.

    Common causes:
    - Logical DB index outside [0, 15]
    - Non-zero logical DB index on a sharded pool
    - Argument types the wire client refuses to encode
    """
    pass


class CrossShardError(CacheLayerError):
    """Raised when a multi-key command's keys do not share a shard."""
    pass


class CommandFailedError(CacheLayerError):
    """
    Raised when the server replies with an error for a command.

    Example: INCR on a value that is not an integer. The connection
    remains healthy.
    """
    pass
