"""
Exception Module

Structured exception hierarchy for the cache access layer, organized by theme.

Module Structure:
-----------------
- **base.py**: CacheLayerError base class + ConfigurationError
- **pool.py**: Borrow-side errors (exhaustion, shutdown, primary discovery)
- **connection.py**: Transport failures on a borrowed connection
- **command.py**: Argument, routing and server-reply errors

Usage:
------
```python
from redis_facade.core.exceptions import PoolExhaustedError, CrossShardError
```
"""

from redis_facade.core.exceptions.base import CacheLayerError, ConfigurationError
from redis_facade.core.exceptions.command import (
    ArgumentOutOfRangeError,
    CommandFailedError,
    CrossShardError,
)
from redis_facade.core.exceptions.connection import ConnectionBrokenError
from redis_facade.core.exceptions.pool import (
    BorrowCancelledError,
    NoPrimaryAvailableError,
    PoolClosedError,
    PoolError,
    PoolExhaustedError,
)

__all__ = [
    # Base
    "CacheLayerError",
    "ConfigurationError",
    # Pool
    "PoolError",
    "PoolExhaustedError",
    "PoolClosedError",
    "BorrowCancelledError",
    "NoPrimaryAvailableError",
    # Connection
    "ConnectionBrokenError",
    # Command
    "ArgumentOutOfRangeError",
    "CrossShardError",
    "CommandFailedError",
]
