"""
Topology selection and process-wide CacheService bootstrap.

STAGE-BOOT: Startup wiring
--------------------------
BOOT.1: Configuration parsed
BOOT.2: Pool built
BOOT.3: Service closed

`build_pool()` turns settings into exactly one pool variant and fails fast
with ConfigurationError on anything ambiguous: several topologies, unknown
topology, host/port list mismatch, non-numeric ports, or a sharded
password list that neither has one entry nor lines up with the hosts.
"""

import threading
from typing import Any

from redis_facade.core.config.constants import MultiKeyPolicy, Topology
from redis_facade.core.config.settings import Settings, get_settings
from redis_facade.core.exceptions import ConfigurationError
from redis_facade.core.logging.logger import get_logger
from redis_facade.infrastructure.cache.cache_service import CacheService
from redis_facade.infrastructure.cache.pool_config import Endpoint, PoolConfig
from redis_facade.infrastructure.cache.pools.arbiter import ArbiterPool
from redis_facade.infrastructure.cache.pools.base import BasePool
from redis_facade.infrastructure.cache.pools.sharded import ShardedPool
from redis_facade.infrastructure.cache.pools.single import SinglePool

logger = get_logger(__name__)


def _split(raw: str) -> list[str]:
    return [part.strip() for part in raw.split(",")]


def parse_topology(raw: str) -> Topology:
    """Exactly one of single / arbiter / sharded."""
    names = [name.lower() for name in _split(raw or "") if name]
    if len(names) != 1:
        raise ConfigurationError(
            "Exactly one cache topology must be configured",
            details={"topology": raw},
        )
    try:
        return Topology(names[0])
    except ValueError:
        raise ConfigurationError(
            f"Unknown cache topology: {names[0]}",
            details={"topology": raw, "allowed": [t.value for t in Topology]},
        ) from None


def parse_endpoints(hosts: str, ports: str) -> list[tuple[str, int]]:
    """Pair comma-separated hosts with comma-separated ports, position by position."""
    host_list = _split(hosts)
    port_list = _split(ports)
    if any(not h for h in host_list):
        raise ConfigurationError("Empty host in cache host list", details={"hosts": hosts})
    if len(host_list) != len(port_list):
        raise ConfigurationError(
            f"{len(host_list)} hosts but {len(port_list)} ports configured",
            details={"hosts": hosts, "ports": ports},
        )
    pairs = []
    for host, port in zip(host_list, port_list):
        if not port.isdigit():
            raise ConfigurationError(
                f"Non-numeric cache port: {port!r}", details={"host": host, "port": port}
            )
        pairs.append((host, int(port)))
    return pairs


def parse_passwords(raw: str, count: int) -> list[str | None]:
    """
    One credential per shard.

    A single entry (including the empty default) applies to every shard;
    otherwise the list must line up with the hosts. Empty entries mean
    "no credential".
    """
    entries = _split(raw or "")
    if len(entries) == 1:
        entries = entries * count
    elif len(entries) != count:
        raise ConfigurationError(
            f"{len(entries)} passwords configured for {count} shards",
            details={"password_count": len(entries), "shard_count": count},
        )
    return [entry or None for entry in entries]


def build_pool(
    settings: Settings | None = None,
    *,
    client_factory=None,
    sentinel_factory=None,
    metrics=None,
    listen: bool = True,
) -> BasePool:
    """
    Build the pool variant selected by `REDIS_TOPOLOGY`.

    Args:
        settings: Settings to read (defaults to get_settings())
        client_factory: Override wire-client construction (tests)
        sentinel_factory: Override arbiter-client construction (tests)
        metrics: Metrics collector (defaults to the process singleton)
        listen: Start the arbiter failover listener

    Raises:
        ConfigurationError: Invalid or ambiguous configuration
        NoPrimaryAvailableError: Arbiter topology and no primary could be found
    """
    settings = settings or get_settings()
    redis_settings = settings.redis

    topology = parse_topology(redis_settings.REDIS_TOPOLOGY)
    config = PoolConfig.from_settings(settings.pool)
    pairs = parse_endpoints(redis_settings.REDIS_HOST, redis_settings.REDIS_PORT)
    socket_timeout = redis_settings.REDIS_TIMEOUT_MS / 1000.0 if redis_settings.REDIS_TIMEOUT_MS > 0 else None
    common: dict[str, Any] = {
        "socket_timeout": socket_timeout,
        "decode_responses": redis_settings.REDIS_DECODE_RESPONSES,
        "client_factory": client_factory,
        "metrics": metrics,
    }

    logger.info(
        "Cache configuration parsed",
        stage="BOOT.1",
        topology=topology.value,
        endpoints=[f"{h}:{p}" for h, p in pairs],
        max_total=config.max_total,
    )

    if topology is Topology.SINGLE:
        if len(pairs) != 1:
            raise ConfigurationError(
                "Single topology takes exactly one host",
                details={"hosts": redis_settings.REDIS_HOST},
            )
        host, port = pairs[0]
        pool: BasePool = SinglePool(
            Endpoint(host, port, redis_settings.REDIS_PASSWORD or None), config, **common
        )

    elif topology is Topology.ARBITER:
        pool = ArbiterPool(
            [Endpoint(host, port) for host, port in pairs],
            redis_settings.REDIS_ARBITER_MASTER_NAME,
            config,
            password=redis_settings.REDIS_PASSWORD or None,
            discovery_timeout=redis_settings.REDIS_ARBITER_DISCOVERY_TIMEOUT_MS / 1000.0,
            sentinel_factory=sentinel_factory,
            listen=listen,
            **common,
        )

    else:
        passwords = parse_passwords(redis_settings.REDIS_PASSWORD, len(pairs))
        pool = ShardedPool(
            [Endpoint(host, port, pw) for (host, port), pw in zip(pairs, passwords)],
            config,
            virtual_nodes=redis_settings.REDIS_SHARD_VIRTUAL_NODES,
            multikey_policy=MultiKeyPolicy(redis_settings.REDIS_SHARD_MULTIKEY_POLICY),
            use_hash_tags=redis_settings.REDIS_SHARD_HASH_TAGS,
            **common,
        )

    logger.info("Cache pool built", stage="BOOT.2", topology=topology.value, pool=repr(pool))
    return pool


def create_cache_service(settings: Settings | None = None, **pool_kwargs) -> CacheService:
    """Build a pool from settings and wrap it in a CacheService."""
    pool = build_pool(settings, **pool_kwargs)
    return CacheService(pool, metrics=pool_kwargs.get("metrics"))


# =============================================================================
# Process-wide instance
# =============================================================================

_cache_service: CacheService | None = None
_cache_service_lock = threading.Lock()


def get_cache_service() -> CacheService:
    """
    Get the global CacheService instance (singleton).

    Built from get_settings() on first use.
    """
    global _cache_service

    with _cache_service_lock:
        if _cache_service is None:
            _cache_service = create_cache_service()
        return _cache_service


def init_cache_service(settings: Settings | None = None, **pool_kwargs) -> CacheService:
    """
    Build the global CacheService, replacing (and closing) any existing one.

    Returns:
        CacheService: The new global instance
    """
    global _cache_service

    service = create_cache_service(settings, **pool_kwargs)
    with _cache_service_lock:
        previous, _cache_service = _cache_service, service
    if previous is not None:
        previous.close()
    return service


def close_cache_service() -> None:
    """Close the global CacheService."""
    global _cache_service

    with _cache_service_lock:
        service, _cache_service = _cache_service, None
    if service is not None:
        service.close()
        logger.info("Global cache service closed", stage="BOOT.3")
