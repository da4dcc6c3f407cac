"""
redis_facade: pooled, topology-agnostic access to Redis-family caches.

    from redis_facade import get_cache_service

    cache = get_cache_service()
    cache.setex(0, "user::1", "alice", 600)
"""

from redis_facade.infrastructure.cache import (
    CacheService,
    build_pool,
    close_cache_service,
    create_cache_service,
    get_cache_service,
    init_cache_service,
)

__version__ = "1.0.0"

__all__ = [
    "CacheService",
    "build_pool",
    "create_cache_service",
    "get_cache_service",
    "init_cache_service",
    "close_cache_service",
]
