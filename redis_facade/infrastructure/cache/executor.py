"""
Command executor: borrow, select, run, release.

STAGE-EXEC: Command execution
-----------------------------
EXEC.1: Command succeeded
EXEC.ERROR: Command failed (neutral result or re-raise)

Every CacheService method goes through `CommandExecutor.execute()`, so the
borrow/select/release sequence and the failure policy live in exactly one
place. The connection is returned to its pool on success, on a cache error
and on any exception raised by the command closure.

Failure policy:
- raise_errors=False (default): cache-layer errors are logged, counted, and
  the command's neutral result is returned.
- raise_errors=True: the same errors are logged, counted and re-raised.
"""

import time
from collections.abc import Callable, Iterable, Sequence
from typing import Any

from redis_facade.core.exceptions import CacheLayerError
from redis_facade.core.logging.logger import get_logger
from redis_facade.infrastructure.cache.connection import Connection
from redis_facade.infrastructure.cache.pools.base import BasePool
from redis_facade.infrastructure.monitoring.metrics_collector import (
    MetricsCollector,
    get_metrics_collector,
)

logger = get_logger(__name__)

# A neutral value, or a zero-argument callable producing a fresh one (for
# mutable collections)
Neutral = Any


class CommandExecutor:
    """
    Runs closures against a pooled connection with a uniform failure policy.

    Example:
        executor.execute(0, "get", lambda conn: conn.get("user::1"), keys=("user::1",))
    """

    def __init__(
        self,
        pool: BasePool,
        *,
        raise_errors: bool = False,
        metrics: MetricsCollector | None = None,
    ):
        self.pool = pool
        self.raise_errors = raise_errors
        self._metrics = metrics or get_metrics_collector()

    def execute(
        self,
        indexdb: int,
        command: str,
        fn: Callable[[Connection], Any],
        *,
        keys: Sequence[Any] = (),
        neutral: Neutral = None,
        cancel=None,
    ) -> Any:
        """
        Run `fn(conn)` on a connection with `indexdb` selected.

        Args:
            indexdb: Logical DB
            command: Command name (for logs and metrics)
            fn: Closure issuing the command
            keys: Keys the command touches (routing on sharded pools)
            neutral: Result returned when the command fails
            cancel: threading.Event that aborts a blocked borrow
        """
        start = time.perf_counter()
        try:
            with self.pool.connection(indexdb, keys=keys, cancel=cancel) as conn:
                result = fn(conn)
        except CacheLayerError as e:
            return self._fail(command, indexdb, e, neutral, start)
        self._succeed(command, start)
        return result

    def execute_grouped(
        self,
        indexdb: int,
        command: str,
        keys: Iterable[Any],
        fn: Callable[[Connection, list[Any]], Any],
        combine: Callable[[list[tuple[list[Any], Any]]], Any],
        *,
        neutral: Neutral = None,
    ) -> Any:
        """
        Run `fn(conn, shard_keys)` once per shard owning some of `keys`.

        `combine` receives `[(shard_keys, shard_result), ...]` and builds the
        final result. On a non-sharded pool there is a single group.
        """
        start = time.perf_counter()
        try:
            self.pool.validate_db(indexdb)
            results = []
            for shard_keys in self.pool.partition(keys).values():
                with self.pool.connection(indexdb, keys=shard_keys) as conn:
                    results.append((shard_keys, fn(conn, shard_keys)))
            combined = combine(results)
        except CacheLayerError as e:
            return self._fail(command, indexdb, e, neutral, start)
        self._succeed(command, start)
        return combined

    def execute_all(
        self,
        indexdb: int,
        command: str,
        fn: Callable[[Connection], Any],
        combine: Callable[[list[Any]], Any],
        *,
        neutral: Neutral = None,
    ) -> Any:
        """Run `fn(conn)` on every shard and combine the results."""
        start = time.perf_counter()
        try:
            self.pool.validate_db(indexdb)
            results = []
            for shard in self.pool.shards():
                with shard.connection(indexdb) as conn:
                    results.append(fn(conn))
            combined = combine(results)
        except CacheLayerError as e:
            return self._fail(command, indexdb, e, neutral, start)
        self._succeed(command, start)
        return combined

    def _succeed(self, command: str, start: float) -> None:
        self._metrics.record_command(command, "success")
        self._metrics.record_command_duration(command, time.perf_counter() - start)

    def _fail(
        self, command: str, indexdb: int, error: CacheLayerError, neutral: Neutral, start: float
    ) -> Any:
        error_type = type(error).__name__
        logger.error(
            f"Cache command {command.upper()} failed: {error.message}",
            stage="EXEC.ERROR",
            command=command,
            indexdb=indexdb,
            error_type=error_type,
            details=error.details,
            retryable=error.retryable,
            raised=self.raise_errors,
        )
        self._metrics.record_command(command, "error")
        self._metrics.record_error(command, error_type)
        self._metrics.record_command_duration(command, time.perf_counter() - start)
        if self.raise_errors:
            raise error
        return neutral() if callable(neutral) else neutral
