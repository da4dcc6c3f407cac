"""
Cache Module

Pooled access to Redis-family servers behind one command surface, for
single-endpoint, arbiter-managed (sentinel) and client-side sharded
deployments.
"""

from .cache_service import CacheService
from .connection import Connection
from .executor import CommandExecutor
from .factory import (
    build_pool,
    close_cache_service,
    create_cache_service,
    get_cache_service,
    init_cache_service,
)
from .hash_ring import HashRing
from .pool_config import Endpoint, PoolConfig
from .pools import ArbiterPool, BasePool, ShardedPool, SinglePool

__all__ = [
    "CacheService",
    "CommandExecutor",
    "Connection",
    "Endpoint",
    "PoolConfig",
    "HashRing",
    "BasePool",
    "SinglePool",
    "ArbiterPool",
    "ShardedPool",
    "build_pool",
    "create_cache_service",
    "get_cache_service",
    "init_cache_service",
    "close_cache_service",
]
