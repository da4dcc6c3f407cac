"""
Pool contract shared by the single, arbiter and sharded pools.

STAGE-POOL: Borrow / release lifecycle
--------------------------------------
POOL.0: Pool initialization
POOL.1: Borrow (route, acquire, select logical DB)
POOL.2: Release
POOL.3: Refill / eviction
POOL.4: Shutdown
POOL.HEALTH: Health check
"""

import time
from abc import ABC, abstractmethod
from collections.abc import Iterable, Iterator, Sequence
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

from redis_facade.core.config.constants import (
    MAX_LOGICAL_DB,
    MIN_LOGICAL_DB,
    POOL_CRITICAL_THRESHOLD,
    POOL_DEGRADED_THRESHOLD,
    POOL_UTILIZATION_WARNING_PCT,
    MultiKeyPolicy,
    PoolState,
    Topology,
)
from redis_facade.core.exceptions import ArgumentOutOfRangeError, CacheLayerError
from redis_facade.core.logging.logger import get_logger

if TYPE_CHECKING:
    import threading

    from redis_facade.infrastructure.cache.connection import Connection
    from redis_facade.infrastructure.cache.pools.single import SinglePool

logger = get_logger(__name__)


def pool_state(active: int, max_total: int) -> PoolState:
    """Classify utilisation into a health state (70% / 90% / 100% bands)."""
    if active >= max_total:
        return PoolState.EXHAUSTED
    utilization = active / max_total
    if utilization >= POOL_CRITICAL_THRESHOLD:
        return PoolState.CRITICAL
    if utilization >= POOL_DEGRADED_THRESHOLD:
        return PoolState.DEGRADED
    return PoolState.HEALTHY


class BasePool(ABC):
    """
    A source of connections for the command executor.

    Subclasses decide which endpoint pool serves a set of keys (`route`).
    Borrowing always happens through `connection()`, which guarantees the
    connection goes back to the exact pool it came from.
    """

    topology: Topology
    # Sharded pools never issue SELECT
    selects_db = True
    multikey_policy = MultiKeyPolicy.STRICT

    def validate_db(self, indexdb: int) -> None:
        if isinstance(indexdb, bool) or not isinstance(indexdb, int) or not (
            MIN_LOGICAL_DB <= indexdb <= MAX_LOGICAL_DB
        ):
            raise ArgumentOutOfRangeError(
                f"Logical DB index must be in [{MIN_LOGICAL_DB}, {MAX_LOGICAL_DB}], got {indexdb!r}",
                details={"indexdb": indexdb},
            )

    @abstractmethod
    def route(self, keys: Sequence[Any] = ()) -> "SinglePool":
        """Return the endpoint pool that serves all of `keys`."""

    @abstractmethod
    def shards(self) -> list["SinglePool"]:
        """Every endpoint pool currently backing this pool."""

    def partition(self, keys: Iterable[Any]) -> dict["SinglePool", list[Any]]:
        """Group keys by the endpoint pool that owns them, preserving order."""
        keys = list(keys)
        return {self.route(keys): keys} if keys else {}

    @contextmanager
    def connection(
        self,
        indexdb: int = 0,
        keys: Sequence[Any] = (),
        cancel: "threading.Event | None" = None,
    ) -> Iterator["Connection"]:
        """
        Borrow a connection with `indexdb` selected; release it on exit.

        Raises:
            ArgumentOutOfRangeError: Invalid logical DB for this topology
            CrossShardError: `keys` span more than one shard
            PoolExhaustedError / PoolClosedError / BorrowCancelledError: Borrow failed
            NoPrimaryAvailableError: Arbiter pool has no primary
        """
        self.validate_db(indexdb)
        pool, conn = self._acquire(keys, cancel)
        try:
            if self.selects_db:
                conn.select_db(indexdb)
            yield conn
        except BaseException as e:
            if not isinstance(e, Exception):
                # Interrupted mid-command: a reply may still be unread on the socket
                conn.mark_broken()
            raise
        finally:
            pool.release(conn)

    def _acquire(
        self, keys: Sequence[Any], cancel: "threading.Event | None"
    ) -> tuple["SinglePool", "Connection"]:
        pool = self.route(keys)
        return pool, pool.borrow(cancel=cancel)

    @abstractmethod
    def close(self, timeout: float | None = None) -> None:
        """Stop lending, wait for borrowed connections, close everything."""

    @property
    @abstractmethod
    def closed(self) -> bool: ...

    # -------------------------------------------------------------------------
    # Observability
    # -------------------------------------------------------------------------

    def stats(self) -> dict[str, Any]:
        """Aggregate counters across every endpoint pool."""
        pools = [p.pool_stats() for p in self.shards()]
        active = sum(p["active"] for p in pools)
        max_total = sum(p["max_total"] for p in pools)
        return {
            "topology": self.topology.value,
            "active": active,
            "idle": sum(p["idle"] for p in pools),
            "waiters": sum(p["waiters"] for p in pools),
            "max_total": max_total,
            "state": pool_state(active, max_total).value if max_total else PoolState.EXHAUSTED.value,
            "closed": self.closed,
            "pools": pools,
        }

    def health_check(self) -> dict[str, Any]:
        """
        PING every endpoint through its pool.

        STAGE-POOL.HEALTH

        Returns:
            Dict with overall status and per-endpoint latency and utilisation.
            Endpoints above 80% utilisation carry `pool_warning=True`.
        """
        results = []
        healthy = True

        for pool in self.shards():
            entry: dict[str, Any] = {
                "endpoint": pool.endpoint.address,
                "status": "healthy",
                "ping_latency_ms": None,
            }
            start = time.perf_counter()
            try:
                conn = pool.borrow()
                try:
                    conn.ping()
                finally:
                    pool.release(conn)
                entry["ping_latency_ms"] = round((time.perf_counter() - start) * 1000, 2)
            except CacheLayerError as e:
                healthy = False
                entry["status"] = "unhealthy"
                entry["error"] = str(e)
                logger.warning(
                    "Cache endpoint health check failed",
                    stage="POOL.HEALTH",
                    endpoint=pool.endpoint.address,
                    error=str(e),
                )

            stats = pool.pool_stats()
            entry["pool_utilization_pct"] = stats["utilization_percent"]
            entry["pool_state"] = stats["state"]
            entry["pool_warning"] = stats["utilization_percent"] > POOL_UTILIZATION_WARNING_PCT
            if entry["pool_warning"]:
                logger.warning(
                    f"Connection pool utilization high: {stats['utilization_percent']}%",
                    stage="POOL.HEALTH",
                    endpoint=pool.endpoint.address,
                    active=stats["active"],
                    max_total=stats["max_total"],
                )
            results.append(entry)

        return {
            "status": "healthy" if healthy and results else "unhealthy",
            "topology": self.topology.value,
            "pools": results,
        }
