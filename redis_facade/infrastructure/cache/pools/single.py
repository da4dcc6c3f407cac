"""
Bounded connection pool for one endpoint.

Idle connections are reused LIFO. When every connection is on loan the
borrower either fails at once or waits up to `max_wait_millis`, depending on
`block_when_exhausted`. A waiting borrower can be cancelled through a
`threading.Event`. Broken connections are destroyed on release and the idle
set is topped back up to `min_idle` on a background thread.
"""

import threading
import time
from collections import deque
from collections.abc import Sequence
from typing import Any

from redis_facade.core.config.constants import BORROW_CANCEL_POLL_INTERVAL, Topology
from redis_facade.core.exceptions import (
    BorrowCancelledError,
    ConnectionBrokenError,
    PoolClosedError,
    PoolExhaustedError,
)
from redis_facade.core.logging.logger import get_logger
from redis_facade.infrastructure.cache.connection import ClientFactory, Connection
from redis_facade.infrastructure.cache.pool_config import Endpoint, PoolConfig
from redis_facade.infrastructure.cache.pools.base import BasePool, pool_state
from redis_facade.infrastructure.monitoring.metrics_collector import (
    MetricsCollector,
    get_metrics_collector,
)

logger = get_logger(__name__)


class SinglePool(BasePool):
    """
    Connection pool bound to a single endpoint.

    Thread-safe: all bookkeeping happens under one condition variable;
    connections are opened and closed outside it.
    """

    topology = Topology.SINGLE

    def __init__(
        self,
        endpoint: Endpoint,
        config: PoolConfig | None = None,
        *,
        socket_timeout: float | None = None,
        decode_responses: bool = True,
        client_factory: ClientFactory | None = None,
        metrics: MetricsCollector | None = None,
    ):
        """
        Initialize the pool and pre-warm `min_idle` connections.

        Args:
            endpoint: Server to connect to
            config: Sizing and blocking policy (defaults to PoolConfig())
            socket_timeout: Per-command socket timeout in seconds
            decode_responses: Return str instead of bytes
            client_factory: Override how wire clients are built (tests)
            metrics: Metrics collector (defaults to the process singleton)
        """
        self.endpoint = endpoint
        self.config = config or PoolConfig()
        self.name = endpoint.address
        self._socket_timeout = socket_timeout
        self._decode_responses = decode_responses
        self._client_factory = client_factory
        self._metrics = metrics or get_metrics_collector()

        self._cond = threading.Condition()
        self._idle: deque[Connection] = deque()
        self._borrowed: set[Connection] = set()
        self._opening = 0
        self._waiters = 0
        self._closed = False
        self._shut_down = False
        self._refilling = False

        self._prewarm()

        logger.info(
            "Connection pool initialized",
            stage="POOL.0",
            endpoint=self.name,
            max_total=self.config.max_total,
            max_idle=self.config.max_idle,
            min_idle=self.config.min_idle,
            max_wait_millis=self.config.max_wait_millis,
            block_when_exhausted=self.config.block_when_exhausted,
            idle=len(self._idle),
        )

    # -------------------------------------------------------------------------
    # Routing
    # -------------------------------------------------------------------------

    def route(self, keys: Sequence[Any] = ()) -> "SinglePool":
        return self

    def shards(self) -> list["SinglePool"]:
        return [self]

    @property
    def closed(self) -> bool:
        return self._closed

    # -------------------------------------------------------------------------
    # Borrow / release
    # -------------------------------------------------------------------------

    def borrow(self, cancel: threading.Event | None = None) -> Connection:
        """
        Take a connection for exclusive use.

        STAGE-POOL.1

        Raises:
            PoolClosedError: The pool has been closed
            PoolExhaustedError: Saturated and not blocking, or max wait elapsed
            BorrowCancelledError: `cancel` was set while waiting
            ConnectionBrokenError: A new connection could not be opened
        """
        started = time.monotonic()
        deadline = started + self.config.max_wait_seconds
        conn = None

        with self._cond:
            while True:
                if self._closed:
                    raise PoolClosedError(
                        "Connection pool is closed", details={"endpoint": self.name}
                    )
                if cancel is not None and cancel.is_set():
                    raise BorrowCancelledError(
                        "Borrow cancelled while waiting for a connection",
                        details={"endpoint": self.name},
                    )
                if self._idle:
                    conn = self._idle.pop()
                    self._borrowed.add(conn)
                    break
                if self._total() < self.config.max_total:
                    # Reserve a slot; the socket is opened outside the lock
                    self._opening += 1
                    break
                if not self.config.block_when_exhausted:
                    raise self._exhausted("Connection pool exhausted")

                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise self._exhausted(
                        f"Timed out after {self.config.max_wait_millis}ms waiting for a connection"
                    )
                if cancel is not None:
                    remaining = min(remaining, BORROW_CANCEL_POLL_INTERVAL)
                self._waiters += 1
                try:
                    self._cond.wait(remaining)
                finally:
                    self._waiters -= 1

        if conn is None:
            conn = self._open_reserved()

        self._metrics.record_borrow_wait(self.name, time.monotonic() - started)
        self._publish_gauges()
        return conn

    def release(self, conn: Connection) -> None:
        """
        Return a borrowed connection.

        STAGE-POOL.2

        Releasing a connection that is not on loan from this pool (double
        release, foreign connection) is logged and ignored.
        """
        with self._cond:
            if conn not in self._borrowed:
                logger.warning(
                    "Ignoring release of a connection not on loan from this pool",
                    stage="POOL.2",
                    endpoint=self.name,
                    connection=repr(conn),
                )
                return
            self._borrowed.discard(conn)

            destroy = (
                self._closed
                or not conn.healthy
                or len(self._idle) >= self.config.max_idle
            )
            if not destroy:
                self._idle.append(conn)

            refill = (
                destroy
                and not self._closed
                and not self._refilling
                and len(self._idle) < self.config.min_idle
            )
            if refill:
                self._refilling = True

            if self._closed:
                self._cond.notify_all()
            else:
                self._cond.notify()

        if destroy:
            logger.debug(
                "Destroying returned connection",
                stage="POOL.2",
                endpoint=self.name,
                broken=not conn.healthy,
            )
            conn.close()
        if refill:
            threading.Thread(
                target=self._refill, name=f"pool-refill-{self.name}", daemon=True
            ).start()
        self._publish_gauges()

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def invalidate_all(self) -> None:
        """
        Stop lending and invalidate every connection of this pool.

        Idle connections are closed now; connections on loan fail their next
        command and are destroyed when returned. Waiting borrowers are woken
        with PoolClosedError. close() still has to be called to wait for the
        loaned connections.
        """
        with self._cond:
            self._closed = True
            idle = list(self._idle)
            self._idle.clear()
            for conn in self._borrowed:
                conn.invalidate()
            self._cond.notify_all()
        for conn in idle:
            conn.close()

    def close(self, timeout: float | None = None) -> None:
        """
        Close the pool.

        STAGE-POOL.4

        New borrows fail with PoolClosedError and waiting borrowers are woken.
        Idle connections close immediately; borrowed connections are given up
        to `timeout` seconds (default shutdown_timeout_millis) to come back,
        then force-closed. Idempotent.
        """
        if timeout is None:
            timeout = self.config.shutdown_timeout_seconds

        with self._cond:
            if self._shut_down:
                return
            self._shut_down = True
            self._closed = True
            idle = list(self._idle)
            self._idle.clear()
            self._cond.notify_all()

        for conn in idle:
            conn.close()

        deadline = time.monotonic() + timeout
        with self._cond:
            while self._borrowed:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    break
                self._cond.wait(remaining)
            stragglers = list(self._borrowed)

        if stragglers:
            logger.warning(
                "Force-closing borrowed connections at shutdown",
                stage="POOL.4",
                endpoint=self.name,
                count=len(stragglers),
            )
        for conn in stragglers:
            conn.close()

        self._publish_gauges()
        logger.info("Connection pool closed", stage="POOL.4", endpoint=self.name)

    # -------------------------------------------------------------------------
    # Observability
    # -------------------------------------------------------------------------

    def pool_stats(self) -> dict[str, Any]:
        with self._cond:
            active = len(self._borrowed)
            idle = len(self._idle)
            opening = self._opening
            waiters = self._waiters
        max_total = self.config.max_total
        return {
            "endpoint": self.name,
            "active": active,
            "idle": idle,
            "opening": opening,
            "waiters": waiters,
            "max_total": max_total,
            "utilization_percent": round(100.0 * active / max_total, 1),
            "state": pool_state(active, max_total).value,
            "closed": self._closed,
        }

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _total(self) -> int:
        return len(self._idle) + len(self._borrowed) + self._opening

    def _exhausted(self, message: str) -> PoolExhaustedError:
        logger.warning(
            message,
            stage="POOL.1",
            endpoint=self.name,
            active=len(self._borrowed),
            max_total=self.config.max_total,
        )
        return PoolExhaustedError(
            message,
            details={
                "endpoint": self.name,
                "max_total": self.config.max_total,
                "max_wait_millis": self.config.max_wait_millis,
            },
        )

    def _new_connection(self) -> Connection:
        conn = Connection(
            self.endpoint,
            socket_timeout=self._socket_timeout,
            decode_responses=self._decode_responses,
            client_factory=self._client_factory,
        )
        conn.owner = self
        return conn

    def _open_reserved(self) -> Connection:
        try:
            conn = self._new_connection()
        except BaseException:
            with self._cond:
                self._opening -= 1
                self._cond.notify()
            raise

        with self._cond:
            self._opening -= 1
            closed = self._closed
            if not closed:
                self._borrowed.add(conn)
            else:
                self._cond.notify_all()
        if closed:
            conn.close()
            raise PoolClosedError("Connection pool is closed", details={"endpoint": self.name})
        return conn

    def _prewarm(self) -> None:
        for _ in range(self.config.min_idle):
            try:
                conn = self._new_connection()
            except ConnectionBrokenError as e:
                logger.warning(
                    "Could not pre-warm idle connections",
                    stage="POOL.0",
                    endpoint=self.name,
                    error=str(e),
                )
                return
            self._idle.append(conn)

    def _refill(self) -> None:
        """Top idle connections back up to min_idle. STAGE-POOL.3"""
        try:
            while True:
                with self._cond:
                    if (
                        self._closed
                        or len(self._idle) >= self.config.min_idle
                        or self._total() >= self.config.max_total
                    ):
                        return
                    self._opening += 1

                try:
                    conn = self._new_connection()
                except ConnectionBrokenError as e:
                    with self._cond:
                        self._opening -= 1
                        self._cond.notify()
                    logger.warning(
                        "Idle refill failed", stage="POOL.3", endpoint=self.name, error=str(e)
                    )
                    return

                with self._cond:
                    self._opening -= 1
                    closed = self._closed
                    if not closed:
                        self._idle.append(conn)
                        self._cond.notify()
                if closed:
                    conn.close()
                    return
        finally:
            with self._cond:
                self._refilling = False

    def _publish_gauges(self) -> None:
        with self._cond:
            active = len(self._borrowed)
            idle = len(self._idle)
        self._metrics.set_pool_connections(self.name, active, idle)

    def __repr__(self) -> str:
        return f"SinglePool({self.name}, max_total={self.config.max_total})"
