"""
Client-side sharded pool.

STAGE-SHARD: Key routing
------------------------
SHARD.0: Ring construction
SHARD.1: Single-shard routing
SHARD.2: Cross-shard rejection

Each endpoint gets its own SinglePool. Keys are routed through a
consistent-hash ring; the shards never talk to each other, so logical DB
selection is not supported (only DB 0) and multi-key commands must resolve
to one shard unless the caller opted into per-shard merging.
"""

from collections.abc import Iterable, Sequence
from typing import Any

from redis_facade.core.config.constants import (
    DEFAULT_VIRTUAL_NODES,
    MIN_LOGICAL_DB,
    MultiKeyPolicy,
    Topology,
)
from redis_facade.core.exceptions import (
    ArgumentOutOfRangeError,
    ConfigurationError,
    CrossShardError,
)
from redis_facade.core.logging.logger import get_logger
from redis_facade.infrastructure.cache.connection import ClientFactory
from redis_facade.infrastructure.cache.hash_ring import HashRing
from redis_facade.infrastructure.cache.pool_config import Endpoint, PoolConfig
from redis_facade.infrastructure.cache.pools.base import BasePool
from redis_facade.infrastructure.cache.pools.single import SinglePool
from redis_facade.infrastructure.monitoring.metrics_collector import MetricsCollector

logger = get_logger(__name__)


class ShardedPool(BasePool):
    """
    Routes each key to one of several independent endpoint pools.

    Attributes:
        ring: The consistent-hash ring, fixed at construction
        multikey_policy: STRICT rejects cross-shard MGET/DEL, MERGE splits them
    """

    topology = Topology.SHARDED
    selects_db = False

    def __init__(
        self,
        endpoints: Sequence[Endpoint],
        config: PoolConfig | None = None,
        *,
        virtual_nodes: int = DEFAULT_VIRTUAL_NODES,
        multikey_policy: MultiKeyPolicy = MultiKeyPolicy.STRICT,
        use_hash_tags: bool = False,
        socket_timeout: float | None = None,
        decode_responses: bool = True,
        client_factory: ClientFactory | None = None,
        metrics: MetricsCollector | None = None,
    ):
        if not endpoints:
            raise ConfigurationError("Sharded topology needs at least one endpoint")
        addresses = [e.address for e in endpoints]
        if len(set(addresses)) != len(addresses):
            raise ConfigurationError(
                "Sharded topology lists the same endpoint twice",
                details={"endpoints": addresses},
            )

        self.multikey_policy = MultiKeyPolicy(multikey_policy)
        self.ring = HashRing(addresses, virtual_nodes=virtual_nodes, use_hash_tags=use_hash_tags)

        self._pools: list[SinglePool] = []
        try:
            for endpoint in endpoints:
                self._pools.append(
                    SinglePool(
                        endpoint,
                        config,
                        socket_timeout=socket_timeout,
                        decode_responses=decode_responses,
                        client_factory=client_factory,
                        metrics=metrics,
                    )
                )
        except BaseException:
            for pool in self._pools:
                pool.close(timeout=0)
            raise

        logger.info(
            "Sharded pool initialized",
            stage="SHARD.0",
            shards=addresses,
            virtual_nodes=virtual_nodes,
            multikey_policy=self.multikey_policy.value,
            hash_tags=use_hash_tags,
        )

    def validate_db(self, indexdb: int) -> None:
        if isinstance(indexdb, bool) or indexdb != MIN_LOGICAL_DB:
            raise ArgumentOutOfRangeError(
                f"Sharded topology supports only logical DB {MIN_LOGICAL_DB}, got {indexdb!r}",
                details={"indexdb": indexdb, "topology": self.topology.value},
            )

    def shard_for(self, key: Any) -> SinglePool:
        return self._pools[self.ring.shard_for(key)]

    def route(self, keys: Sequence[Any] = ()) -> SinglePool:
        """
        Pool owning every key in `keys`.

        STAGE-SHARD.1

        Raises:
            CrossShardError: Keys resolve to different shards
            ArgumentOutOfRangeError: No key given (nothing to route on)
        """
        if not keys:
            raise ArgumentOutOfRangeError(
                "Sharded topology needs a key to route a command",
                details={"topology": self.topology.value},
            )
        groups = self.ring.shards_for(keys)
        if len(groups) > 1:
            logger.info(
                "Rejecting multi-key command spanning shards",
                stage="SHARD.2",
                shard_count=len(groups),
                key_count=len(keys),
            )
            raise CrossShardError(
                f"Keys span {len(groups)} shards",
                details={
                    "shards": [self._pools[i].name for i in sorted(groups)],
                    "key_count": len(keys),
                },
            )
        return self._pools[next(iter(groups))]

    def partition(self, keys: Iterable[Any]) -> dict[SinglePool, list[Any]]:
        groups = self.ring.shards_for(list(keys))
        return {self._pools[i]: group for i, group in groups.items()}

    def shards(self) -> list[SinglePool]:
        return list(self._pools)

    @property
    def closed(self) -> bool:
        return all(pool.closed for pool in self._pools)

    def close(self, timeout: float | None = None) -> None:
        for pool in self._pools:
            pool.close(timeout)
        logger.info("Sharded pool closed", stage="POOL.4", shards=len(self._pools))

    def __repr__(self) -> str:
        return f"ShardedPool({[p.name for p in self._pools]}, policy={self.multikey_policy.value})"
