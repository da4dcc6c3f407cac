"""
Pool variants.

- SinglePool: one endpoint
- ArbiterPool: follows the primary named by arbiter processes
- ShardedPool: consistent-hash routing across independent endpoints
"""

from .base import BasePool, pool_state
from .single import SinglePool
from .sharded import ShardedPool
from .arbiter import ArbiterPool, parse_switch_master

__all__ = [
    "BasePool",
    "pool_state",
    "SinglePool",
    "ShardedPool",
    "ArbiterPool",
    "parse_switch_master",
]
