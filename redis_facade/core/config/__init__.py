"""
Configuration Module

Centralized, type-safe configuration management for the cache access layer.

Components:
-----------
- **settings.py**: Pydantic-based configuration with environment variable loading
- **constants.py**: Logical DB bounds, topology enums, pool thresholds

Usage:
------
```python
from redis_facade.core.config import get_settings

settings = get_settings()
topology = settings.redis.REDIS_TOPOLOGY
max_total = settings.pool.REDIS_POOL_MAX_TOTAL
```

Environment Variables:
---------------------
```bash
REDIS_TOPOLOGY=sharded
REDIS_HOST=10.0.0.1,10.0.0.2,10.0.0.3
REDIS_PORT=6379,6379,6379
REDIS_PASSWORD=,secret,
REDIS_POOL_MAX_TOTAL=16
```

Testing:
-------
```python
os.environ["REDIS_TOPOLOGY"] = "arbiter"
settings = reload_settings()
```
"""

from redis_facade.core.config.constants import (
    MAX_LOGICAL_DB,
    MIN_LOGICAL_DB,
    MultiKeyPolicy,
    PoolState,
    Topology,
)
from redis_facade.core.config.settings import Settings, get_settings, reload_settings

__all__ = [
    # Settings
    "Settings",
    "get_settings",
    "reload_settings",
    # Enums
    "Topology",
    "MultiKeyPolicy",
    "PoolState",
    # Logical DB bounds
    "MIN_LOGICAL_DB",
    "MAX_LOGICAL_DB",
]
