"""
Arbiter-backed pool: follows the primary of a replicated deployment.

STAGE-ARBITER: Primary discovery and failover
---------------------------------------------
ARBITER.0: Initialization
ARBITER.1: Primary discovery
ARBITER.2: Failover notification received
ARBITER.3: Pool swap
ARBITER.4: Listener reconnect
ARBITER.5: Shutdown

The arbiters (sentinel processes) are asked for the current primary of
`master_name`; a SinglePool is kept against it. A daemon thread listens for
`+switch-master` notifications. On failover the SinglePool is swapped for a
new one and every connection still on loan from the old primary is
invalidated, so its next command raises ConnectionBrokenError.
"""

import threading
from collections.abc import Callable, Sequence
from typing import Any

from redis import exceptions as redis_exceptions
from redis.sentinel import Sentinel
from tenacity import retry, retry_if_exception_type, stop_after_delay, wait_fixed

from redis_facade.core.config.constants import (
    ARBITER_DISCOVERY_RETRY_DELAY,
    ARBITER_LISTENER_RECONNECT_DELAY,
    ARBITER_SWITCH_CHANNEL,
    Topology,
)
from redis_facade.core.exceptions import (
    ConfigurationError,
    NoPrimaryAvailableError,
    PoolClosedError,
)
from redis_facade.core.logging.logger import get_logger
from redis_facade.infrastructure.cache.connection import ClientFactory
from redis_facade.infrastructure.cache.pool_config import Endpoint, PoolConfig
from redis_facade.infrastructure.cache.pools.base import BasePool
from redis_facade.infrastructure.cache.pools.single import SinglePool
from redis_facade.infrastructure.monitoring.metrics_collector import (
    MetricsCollector,
    get_metrics_collector,
)

logger = get_logger(__name__)

# Builds the arbiter client: (arbiter endpoints, socket_timeout) -> Sentinel
SentinelFactory = Callable[[Sequence[Endpoint], float | None], Sentinel]


def default_sentinel_factory(arbiters: Sequence[Endpoint], socket_timeout: float | None) -> Sentinel:
    return Sentinel(
        [(a.host, a.port) for a in arbiters],
        socket_timeout=socket_timeout,
        sentinel_kwargs={"socket_timeout": socket_timeout, "decode_responses": True},
    )


def parse_switch_master(data: Any) -> tuple[str, Endpoint] | None:
    """
    Parse a `+switch-master` payload.

    Format: "<master-name> <old-ip> <old-port> <new-ip> <new-port>".
    Returns (master_name, new primary endpoint) or None if malformed.
    """
    if isinstance(data, bytes):
        data = data.decode("utf-8", errors="replace")
    if not isinstance(data, str):
        return None
    parts = data.split()
    if len(parts) != 5 or not parts[4].isdigit():
        return None
    try:
        return parts[0], Endpoint(parts[3], int(parts[4]))
    except ConfigurationError:
        return None


class ArbiterPool(BasePool):
    """
    Pool that always lends connections to the current primary.

    Attributes:
        master_name: Replica-set name the arbiters monitor
        primary: Endpoint the current internal pool points at
    """

    topology = Topology.ARBITER

    def __init__(
        self,
        arbiters: Sequence[Endpoint],
        master_name: str,
        config: PoolConfig | None = None,
        *,
        password: str | None = None,
        discovery_timeout: float = 5.0,
        socket_timeout: float | None = None,
        decode_responses: bool = True,
        client_factory: ClientFactory | None = None,
        sentinel_factory: SentinelFactory | None = None,
        metrics: MetricsCollector | None = None,
        listen: bool = True,
    ):
        """
        Discover the primary and open a pool against it.

        Args:
            arbiters: Arbiter endpoints, tried in order
            master_name: Replica-set name to follow
            config: Pool sizing for the primary pool
            password: Credential of the primary (arbiters are unauthenticated)
            discovery_timeout: Seconds to keep asking arbiters for a primary
            listen: Start the failover listener thread

        Raises:
            ConfigurationError: No arbiters or empty master name
            NoPrimaryAvailableError: No arbiter named a primary in time
        """
        if not arbiters:
            raise ConfigurationError("Arbiter topology needs at least one arbiter endpoint")
        if not master_name:
            raise ConfigurationError("Arbiter topology needs a master name")

        self.arbiters = list(arbiters)
        self.master_name = master_name
        self.config = config or PoolConfig()
        self._password = password
        self._discovery_timeout = discovery_timeout
        self._socket_timeout = socket_timeout
        self._decode_responses = decode_responses
        self._client_factory = client_factory
        self._metrics = metrics or get_metrics_collector()
        self._sentinel = (sentinel_factory or default_sentinel_factory)(self.arbiters, socket_timeout)

        self._swap_lock = threading.RLock()
        self._closed = False
        self._stop = threading.Event()
        self._retiring: list[threading.Thread] = []

        self.primary = self.discover_primary()
        self._pool = self._build_pool(self.primary)

        self._listener: threading.Thread | None = None
        if listen:
            self._listener = threading.Thread(
                target=self._listen, name=f"arbiter-listener-{master_name}", daemon=True
            )
            self._listener.start()

        logger.info(
            "Arbiter pool initialized",
            stage="ARBITER.0",
            master_name=master_name,
            primary=self.primary.address,
            arbiters=[a.address for a in self.arbiters],
            listening=listen,
        )

    # -------------------------------------------------------------------------
    # Discovery
    # -------------------------------------------------------------------------

    def discover_primary(self) -> Endpoint:
        """
        Ask the arbiters for the current primary.

        STAGE-ARBITER.1

        Retries until `discovery_timeout` elapses.

        Raises:
            NoPrimaryAvailableError: No arbiter named a primary in time
        """

        @retry(
            stop=stop_after_delay(self._discovery_timeout),
            wait=wait_fixed(ARBITER_DISCOVERY_RETRY_DELAY),
            retry=retry_if_exception_type(
                (redis_exceptions.ConnectionError, redis_exceptions.TimeoutError)
            ),
            reraise=True,
            before_sleep=lambda retry_state: logger.info(
                "Primary discovery retry",
                stage="ARBITER.1",
                attempt=retry_state.attempt_number,
                master_name=self.master_name,
            ),
        )
        def _discover():
            # MasterNotFoundError subclasses ConnectionError
            return self._sentinel.discover_master(self.master_name)

        try:
            host, port = _discover()
        except (redis_exceptions.ConnectionError, redis_exceptions.TimeoutError) as e:
            logger.error(
                "No primary available",
                stage="ARBITER.1",
                master_name=self.master_name,
                error=str(e),
            )
            raise NoPrimaryAvailableError.from_exception(
                e,
                message=f"No arbiter could name a primary for '{self.master_name}'",
                master_name=self.master_name,
                arbiters=[a.address for a in self.arbiters],
            ) from e

        return Endpoint(host, int(port), self._password)

    # -------------------------------------------------------------------------
    # Failover
    # -------------------------------------------------------------------------

    def on_primary_change(self, endpoint: Endpoint) -> None:
        """
        Swap the internal pool to `endpoint`.

        STAGE-ARBITER.3

        Borrowers observe either the old pool or the new one. Connections on
        loan from the old pool are invalidated; the old pool closes in the
        background once they come back (or its shutdown timeout elapses).
        A notification naming the current primary is ignored.
        """
        if endpoint.password is None and self._password is not None:
            endpoint = Endpoint(endpoint.host, endpoint.port, self._password)

        with self._swap_lock:
            if self._closed:
                return
            if endpoint.address == self.primary.address:
                logger.debug(
                    "Primary unchanged, ignoring notification",
                    stage="ARBITER.3",
                    primary=endpoint.address,
                )
                return

            new_pool = self._build_pool(endpoint)
            old_pool, old_primary = self._pool, self.primary
            self._pool = new_pool
            self.primary = endpoint
            old_pool.invalidate_all()

            retire = threading.Thread(
                target=old_pool.close, name=f"arbiter-retire-{old_primary.address}", daemon=True
            )
            retire.start()
            self._retiring = [t for t in self._retiring if t.is_alive()] + [retire]

        self._metrics.record_failover(self.master_name)
        logger.warning(
            "Primary failover applied",
            stage="ARBITER.3",
            master_name=self.master_name,
            old_primary=old_primary.address,
            new_primary=endpoint.address,
        )

    def _listen(self) -> None:
        """Follow `+switch-master` on one arbiter at a time. STAGE-ARBITER.2"""
        index = 0
        while not self._stop.is_set():
            sentinel_client = self._sentinel.sentinels[index % len(self._sentinel.sentinels)]
            pubsub = sentinel_client.pubsub(ignore_subscribe_messages=True)
            try:
                pubsub.subscribe(ARBITER_SWITCH_CHANNEL)
                while not self._stop.is_set():
                    message = pubsub.get_message(timeout=1.0)
                    if message is None:
                        continue
                    self._handle_notification(message.get("data"))
            except (redis_exceptions.ConnectionError, redis_exceptions.TimeoutError) as e:
                index += 1
                logger.warning(
                    "Arbiter listener lost its connection, trying next arbiter",
                    stage="ARBITER.4",
                    master_name=self.master_name,
                    error=str(e),
                )
                self._stop.wait(ARBITER_LISTENER_RECONNECT_DELAY)
            except Exception as e:
                index += 1
                logger.error(
                    "Arbiter listener failed, resubscribing",
                    stage="ARBITER.4",
                    master_name=self.master_name,
                    error_type=type(e).__name__,
                    error=str(e),
                    exc_info=True,
                )
                self._stop.wait(ARBITER_LISTENER_RECONNECT_DELAY)
            finally:
                try:
                    pubsub.close()
                except (redis_exceptions.RedisError, OSError) as e:
                    logger.debug("Error closing arbiter subscription", stage="ARBITER.4", error=str(e))

    def _handle_notification(self, data: Any) -> None:
        parsed = parse_switch_master(data)
        if parsed is None:
            logger.warning("Malformed failover notification", stage="ARBITER.2", data=str(data))
            return
        name, endpoint = parsed
        if name != self.master_name:
            return
        logger.info(
            "Failover notification received",
            stage="ARBITER.2",
            master_name=name,
            new_primary=endpoint.address,
        )
        try:
            self.on_primary_change(endpoint)
        except Exception as e:
            # The new primary may not accept connections yet; the next
            # notification or a restart retries
            logger.error(
                "Failed to swap to new primary",
                stage="ARBITER.3",
                master_name=name,
                new_primary=endpoint.address,
                error=str(e),
                error_type=type(e).__name__,
            )

    # -------------------------------------------------------------------------
    # Pool contract
    # -------------------------------------------------------------------------

    def route(self, keys: Sequence[Any] = ()) -> SinglePool:
        with self._swap_lock:
            return self._pool

    def shards(self) -> list[SinglePool]:
        return [self.route()]

    def _acquire(self, keys, cancel):
        while True:
            pool = self.route(keys)
            try:
                return pool, pool.borrow(cancel=cancel)
            except PoolClosedError:
                # Lost a race with a failover swap: retry on the new pool
                with self._swap_lock:
                    if self._closed or pool is self._pool:
                        raise

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self, timeout: float | None = None) -> None:
        """Stop the listener and close the current pool. STAGE-ARBITER.5"""
        with self._swap_lock:
            if self._closed:
                return
            self._closed = True
            pool = self._pool
            retiring = list(self._retiring)
        self._stop.set()
        pool.close(timeout)
        if self._listener is not None:
            self._listener.join(timeout=2.0)
        for thread in retiring:
            thread.join(timeout=timeout if timeout is not None else self.config.shutdown_timeout_seconds)
        logger.info("Arbiter pool closed", stage="ARBITER.5", master_name=self.master_name)

    def _build_pool(self, endpoint: Endpoint) -> SinglePool:
        return SinglePool(
            endpoint,
            self.config,
            socket_timeout=self._socket_timeout,
            decode_responses=self._decode_responses,
            client_factory=self._client_factory,
            metrics=self._metrics,
        )

    def __repr__(self) -> str:
        return f"ArbiterPool({self.master_name}, primary={self.primary.address})"
