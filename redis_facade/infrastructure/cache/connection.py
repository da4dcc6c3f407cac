"""
Connection: one live session to one cache endpoint.

A Connection wraps a single-socket redis-py client. It is created by its
owning pool, used by exactly one borrower at a time, and destroyed when the
pool evicts it or shuts down.

Every command passes through `execute()`, which translates wire-client
errors into the layer's exception taxonomy:

    ResponseError          -> CommandFailedError      (connection stays healthy)
    DataError              -> ArgumentOutOfRangeError (nothing was sent)
    UnicodeDecodeError     -> CommandFailedError      (connection marked broken)
    ConnectionError, etc.  -> ConnectionBrokenError   (connection marked broken)

The command catalog is exposed as attributes: `conn.get("k")`,
`conn.zadd("z", {"m": 1.0})`, ... with redis-py signatures.
"""

import functools
import time
from collections.abc import Callable
from typing import Any

import redis
from redis import exceptions as redis_exceptions
from redis.backoff import NoBackoff
from redis.retry import Retry

from redis_facade.core.config.constants import MAX_LOGICAL_DB, MIN_LOGICAL_DB
from redis_facade.core.exceptions import (
    ArgumentOutOfRangeError,
    CommandFailedError,
    ConnectionBrokenError,
)
from redis_facade.core.logging.logger import get_logger
from redis_facade.infrastructure.cache.pool_config import Endpoint

logger = get_logger(__name__)

# Builds the wire client for one endpoint: (endpoint, socket_timeout, decode_responses)
ClientFactory = Callable[[Endpoint, float | None, bool], redis.Redis]

COMMANDS = frozenset({
    # strings and keys
    "get", "set", "setex", "setnx", "delete", "append", "exists", "expire",
    "ttl", "persist", "mget", "mset", "msetnx", "getset", "getrange",
    "setrange", "incr", "incrby", "decr", "decrby", "strlen",
    # hashes
    "hset", "hsetnx", "hget", "hmget", "hincrby", "hexists", "hlen", "hdel",
    "hkeys", "hvals", "hgetall",
    # lists
    "lpush", "rpush", "lset", "lrem", "ltrim", "lpop", "rpop", "rpoplpush",
    "lindex", "llen", "lrange", "sort",
    # sets
    "sadd", "srem", "spop", "sdiff", "sdiffstore", "sinter", "sinterstore",
    "sunion", "sunionstore", "smove", "scard", "sismember", "srandmember",
    "smembers",
    # sorted sets
    "zadd", "zrange", "zrevrange", "zrangebyscore", "zrevrangebyscore",
    "zcount", "zrem", "zincrby", "zrank", "zrevrank", "zcard", "zscore",
    "zremrangebyrank", "zremrangebyscore",
    # server
    "keys", "type", "flushdb", "ping",
})


def default_client_factory(
    endpoint: Endpoint, socket_timeout: float | None, decode_responses: bool
) -> redis.Redis:
    """
    Open a single-socket client to `endpoint`.

    Transparent retries are disabled: a silent reconnect would re-select the
    client's construction DB and lose the borrower's SELECT.
    """
    return redis.Redis(
        host=endpoint.host,
        port=endpoint.port,
        password=endpoint.password,
        socket_timeout=socket_timeout,
        socket_connect_timeout=socket_timeout,
        decode_responses=decode_responses,
        retry=Retry(NoBackoff(), 0),
        single_connection_client=True,
    )


class Connection:
    """
    A single session to one endpoint with logical DB selection.

    Attributes:
        endpoint: The endpoint this session talks to
        owner: The pool that created this connection (set by the pool)
        db: Logical DB currently selected on this session
    """

    def __init__(
        self,
        endpoint: Endpoint,
        *,
        socket_timeout: float | None = None,
        decode_responses: bool = True,
        client_factory: ClientFactory | None = None,
    ):
        self.endpoint = endpoint
        self.owner = None
        self.created_at = time.monotonic()
        self._db = 0
        self._broken = False
        self._invalidated = False
        self._closed = False

        factory = client_factory or default_client_factory
        try:
            self._client = factory(endpoint, socket_timeout, decode_responses)
            self._client.ping()
        except redis_exceptions.RedisError as e:
            logger.warning(
                "Failed to open cache connection",
                stage="CONN.1",
                endpoint=endpoint.address,
                error=str(e),
            )
            raise ConnectionBrokenError.from_exception(
                e,
                message=f"Failed to connect to {endpoint.address}: {e}",
                endpoint=endpoint.address,
            ) from e

        logger.debug("Cache connection opened", stage="CONN.1", endpoint=endpoint.address)

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def db(self) -> int:
        return self._db

    @property
    def healthy(self) -> bool:
        return not (self._broken or self._closed)

    @property
    def closed(self) -> bool:
        return self._closed

    def mark_broken(self) -> None:
        """Flag the session as unusable; its pool destroys it on return."""
        self._broken = True

    def invalidate(self) -> None:
        """
        Invalidate a connection that is still on loan.

        Used by the arbiter pool on failover: the borrower's next command
        fails with ConnectionBrokenError instead of reaching the old primary.
        """
        self._invalidated = True
        self._broken = True

    # -------------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------------

    def select_db(self, index: int) -> None:
        """
        Select logical DB `index` for all subsequent commands on this session.

        Raises:
            ArgumentOutOfRangeError: If index is outside [0, 15]
            ConnectionBrokenError: On transport error
        """
        if isinstance(index, bool) or not isinstance(index, int) or not (
            MIN_LOGICAL_DB <= index <= MAX_LOGICAL_DB
        ):
            raise ArgumentOutOfRangeError(
                f"Logical DB index must be in [{MIN_LOGICAL_DB}, {MAX_LOGICAL_DB}], got {index!r}",
                details={"indexdb": index, "endpoint": self.endpoint.address},
            )
        self._call("select", self._client.execute_command, "SELECT", index)
        self._db = index

    def execute(self, command: str, *args, **kwargs) -> Any:
        """Run one catalog command on this session."""
        if command not in COMMANDS:
            raise ArgumentOutOfRangeError(
                f"Unknown command: {command}", details={"command": command}
            )
        return self._call(command, getattr(self._client, command), *args, **kwargs)

    def __getattr__(self, name: str):
        if name in COMMANDS:
            return functools.partial(self.execute, name)
        raise AttributeError(f"{type(self).__name__!r} object has no attribute {name!r}")

    def _call(self, command: str, fn: Callable[..., Any], *args, **kwargs) -> Any:
        self._ensure_usable(command)
        try:
            return fn(*args, **kwargs)
        except redis_exceptions.ResponseError as e:
            raise CommandFailedError.from_exception(
                e, command=command, endpoint=self.endpoint.address
            ) from e
        except redis_exceptions.DataError as e:
            raise ArgumentOutOfRangeError.from_exception(
                e, command=command, endpoint=self.endpoint.address
            ) from e
        except UnicodeDecodeError as e:
            # The client drops the socket mid-reply; never lend this session again
            self._broken = True
            logger.warning(
                "Cache reply is not valid text",
                stage="CONN.2",
                command=command,
                endpoint=self.endpoint.address,
                error=str(e),
            )
            raise CommandFailedError.from_exception(
                e,
                message=f"{command.upper()} reply could not be decoded as UTF-8",
                command=command,
                endpoint=self.endpoint.address,
            ) from e
        except redis_exceptions.RedisError as e:
            self._broken = True
            logger.warning(
                "Cache connection broken",
                stage="CONN.2",
                command=command,
                endpoint=self.endpoint.address,
                error=str(e),
            )
            raise ConnectionBrokenError.from_exception(
                e, command=command, endpoint=self.endpoint.address
            ) from e

    def _ensure_usable(self, command: str) -> None:
        if self._closed:
            raise ConnectionBrokenError(
                "Connection is closed",
                details={"command": command, "endpoint": self.endpoint.address},
            )
        if self._invalidated:
            raise ConnectionBrokenError(
                "Connection invalidated by primary failover",
                details={"command": command, "endpoint": self.endpoint.address},
            )

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def close(self) -> None:
        """Close the session. Idempotent."""
        if self._closed:
            return
        self._closed = True
        try:
            self._client.close()
            self._client.connection_pool.disconnect()
        except (redis_exceptions.RedisError, OSError) as e:
            logger.debug(
                "Error while closing cache connection",
                stage="CONN.3",
                endpoint=self.endpoint.address,
                error=str(e),
            )

    def __repr__(self) -> str:
        state = "closed" if self._closed else ("broken" if self._broken else "ok")
        return f"Connection({self.endpoint.address}, db={self._db}, {state})"
