"""
CacheService: topology-agnostic command surface.

Every command takes the logical DB index first, then the command arguments:

    cache = get_cache_service()
    cache.setex(0, "Time:1", "2026-10-19T10:00:00", 600)
    cache.mget(0, "user::1", "user::2")

The service is the same for single, arbiter and sharded pools. On a sharded
pool only logical DB 0 is valid and multi-key commands must hash to a single
shard, except:
- KEYS and FLUSHDB, which always run on every shard and merge.
- MGET and DEL, which are split per shard and merged when the pool's
  multi-key policy is `merge`.

Failure policy: cache-layer failures are logged, counted and turned into a
neutral result (None, 0, False, or an empty collection, documented per
section below). Use `cache.strict` for the same surface with errors raised.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Mapping, Sequence
from typing import Any

from redis_facade.core.config.constants import NAMESPACE_SEPARATOR, MultiKeyPolicy
from redis_facade.core.logging.logger import get_logger
from redis_facade.infrastructure.cache.connection import Connection
from redis_facade.infrastructure.cache.executor import CommandExecutor
from redis_facade.infrastructure.cache.pools.base import BasePool
from redis_facade.infrastructure.monitoring.metrics_collector import MetricsCollector

logger = get_logger(__name__)

KeyT = str | bytes
ValueT = str | bytes | int | float

_GLOB_SPECIAL = re.compile(r"([*?\[\]\\])")


class CacheService:
    """
    Command surface over a pool.

    Attributes:
        pool: The pool commands are executed against
        strict: The same surface sharing this pool, raising instead of
            returning neutral results
    """

    def __init__(
        self,
        pool: BasePool,
        *,
        raise_errors: bool = False,
        metrics: MetricsCollector | None = None,
    ):
        self.pool = pool
        self._metrics = metrics
        self._executor = CommandExecutor(pool, raise_errors=raise_errors, metrics=metrics)
        self._strict: "CacheService | None" = self if raise_errors else None

    @property
    def raise_errors(self) -> bool:
        return self._executor.raise_errors

    @property
    def strict(self) -> "CacheService":
        if self._strict is None:
            self._strict = CacheService(self.pool, raise_errors=True, metrics=self._metrics)
        return self._strict

    def execute(
        self,
        indexdb: int,
        fn: Callable[[Connection], Any],
        *,
        keys: Sequence[KeyT] = (),
        neutral: Any = None,
        command: str = "execute",
    ) -> Any:
        """
        Run an arbitrary closure on a connection with `indexdb` selected.

        The connection is released whether the closure returns or raises.
        On a sharded pool `keys` decides which shard the closure runs on.
        """
        return self._executor.execute(indexdb, command, fn, keys=keys, neutral=neutral)

    def _run(self, indexdb, command, fn, keys, neutral=None):
        return self._executor.execute(indexdb, command, fn, keys=keys, neutral=neutral)

    def _merges(self) -> bool:
        return self.pool.multikey_policy is MultiKeyPolicy.MERGE

    # =========================================================================
    # Keys and strings
    # Neutral: None for values and status replies, 0 for integers,
    # False for booleans, [] for lists.
    # =========================================================================

    def get(self, indexdb: int, key: KeyT) -> Any:
        """GET. Returns the value, or None if the key is missing."""
        return self._run(indexdb, "get", lambda c: c.get(key), (key,))

    def set(self, indexdb: int, key: KeyT, value: ValueT) -> bool | None:
        """SET. Returns True on success."""
        return self._run(indexdb, "set", lambda c: c.set(key, value), (key,))

    def setex(self, indexdb: int, key: KeyT, value: ValueT, seconds: int) -> bool | None:
        """SETEX: set `key` to `value` with a time-to-live of `seconds`."""
        return self._run(indexdb, "setex", lambda c: c.setex(key, seconds, value), (key,))

    def setnx(self, indexdb: int, key: KeyT, value: ValueT) -> bool:
        return self._run(indexdb, "setnx", lambda c: bool(c.setnx(key, value)), (key,), False)

    def delete(self, indexdb: int, *keys: KeyT) -> int:
        """
        DEL. Returns the number of keys removed.

        On a sharded pool with the `merge` policy, keys on different shards
        are deleted shard by shard and the counts summed.
        """
        if self._merges():
            return self._executor.execute_grouped(
                indexdb,
                "delete",
                keys,
                lambda c, shard_keys: c.delete(*shard_keys),
                lambda results: sum(count for _, count in results),
                neutral=0,
            )
        return self._run(indexdb, "delete", lambda c: c.delete(*keys), keys, 0)

    def append(self, indexdb: int, key: KeyT, value: ValueT) -> int:
        """APPEND. Returns the new length of the string."""
        return self._run(indexdb, "append", lambda c: c.append(key, value), (key,), 0)

    def exists(self, indexdb: int, key: KeyT) -> bool:
        return self._run(indexdb, "exists", lambda c: bool(c.exists(key)), (key,), False)

    def expire(self, indexdb: int, key: KeyT, seconds: int) -> bool:
        """EXPIRE. True if the timeout was set, False if the key is missing."""
        return self._run(indexdb, "expire", lambda c: bool(c.expire(key, seconds)), (key,), False)

    def ttl(self, indexdb: int, key: KeyT) -> int:
        """
        TTL in seconds.

        Returns -1 for a key without expiry and -2 for a missing key. A
        failed call also returns -2.
        """
        return self._run(indexdb, "ttl", lambda c: c.ttl(key), (key,), -2)

    def persist(self, indexdb: int, key: KeyT) -> bool:
        """PERSIST. True if an expiry was removed."""
        return self._run(indexdb, "persist", lambda c: bool(c.persist(key)), (key,), False)

    def mget(self, indexdb: int, *keys: KeyT) -> list[Any]:
        """
        MGET. Returns values in key order, None for missing keys.

        On a sharded pool with the `merge` policy, keys on different shards
        are fetched shard by shard and reassembled in request order.
        """
        if self._merges():
            return self._executor.execute_grouped(
                indexdb,
                "mget",
                keys,
                lambda c, shard_keys: c.mget(shard_keys),
                lambda results: _reassemble(keys, results),
                neutral=list,
            )
        return self._run(indexdb, "mget", lambda c: c.mget(keys), keys, list)

    def mset(self, indexdb: int, mapping: Mapping[KeyT, ValueT]) -> bool | None:
        """MSET. All keys must live on one shard on a sharded pool."""
        return self._run(indexdb, "mset", lambda c: c.mset(dict(mapping)), tuple(mapping))

    def msetnx(self, indexdb: int, mapping: Mapping[KeyT, ValueT]) -> bool:
        """MSETNX. True only if none of the keys existed and all were set."""
        return self._run(
            indexdb, "msetnx", lambda c: bool(c.msetnx(dict(mapping))), tuple(mapping), False
        )

    def getset(self, indexdb: int, key: KeyT, value: ValueT) -> Any:
        """GETSET. Returns the previous value."""
        return self._run(indexdb, "getset", lambda c: c.getset(key, value), (key,))

    def getrange(self, indexdb: int, key: KeyT, start: int, end: int) -> Any:
        return self._run(indexdb, "getrange", lambda c: c.getrange(key, start, end), (key,))

    def setrange(self, indexdb: int, key: KeyT, value: ValueT, offset: int) -> int:
        """SETRANGE: overwrite from `offset`. Returns the length of the string after the write."""
        return self._run(indexdb, "setrange", lambda c: c.setrange(key, offset, value), (key,), 0)

    def incr(self, indexdb: int, key: KeyT) -> int:
        return self._run(indexdb, "incr", lambda c: c.incr(key), (key,), 0)

    def incrby(self, indexdb: int, key: KeyT, amount: int) -> int:
        return self._run(indexdb, "incrby", lambda c: c.incrby(key, amount), (key,), 0)

    def decr(self, indexdb: int, key: KeyT) -> int:
        return self._run(indexdb, "decr", lambda c: c.decr(key), (key,), 0)

    def decrby(self, indexdb: int, key: KeyT, amount: int) -> int:
        return self._run(indexdb, "decrby", lambda c: c.decrby(key, amount), (key,), 0)

    def strlen(self, indexdb: int, key: KeyT) -> int:
        return self._run(indexdb, "strlen", lambda c: c.strlen(key), (key,), 0)

    # =========================================================================
    # Hashes
    # Neutral: None for values, 0 for integers, False for booleans,
    # []/set()/{} for collections.
    # =========================================================================

    def hset(self, indexdb: int, key: KeyT, field: KeyT, value: ValueT) -> int:
        """HSET. Returns 1 if the field is new, 0 if it was overwritten."""
        return self._run(indexdb, "hset", lambda c: c.hset(key, field, value), (key,), 0)

    def hsetnx(self, indexdb: int, key: KeyT, field: KeyT, value: ValueT) -> bool:
        return self._run(
            indexdb, "hsetnx", lambda c: bool(c.hsetnx(key, field, value)), (key,), False
        )

    def hmset(self, indexdb: int, key: KeyT, mapping: Mapping[KeyT, ValueT]) -> bool | None:
        """
        Set several hash fields at once.

        Issued as HSET with multiple field/value pairs (HMSET is deprecated
        on the server). Returns True on success.
        """

        def _hmset(c: Connection) -> bool:
            c.hset(key, mapping=dict(mapping))
            return True

        return self._run(indexdb, "hmset", _hmset, (key,))

    def hget(self, indexdb: int, key: KeyT, field: KeyT) -> Any:
        return self._run(indexdb, "hget", lambda c: c.hget(key, field), (key,))

    def hmget(self, indexdb: int, key: KeyT, *fields: KeyT) -> list[Any]:
        return self._run(indexdb, "hmget", lambda c: c.hmget(key, list(fields)), (key,), list)

    def hincrby(self, indexdb: int, key: KeyT, field: KeyT, amount: int) -> int:
        return self._run(indexdb, "hincrby", lambda c: c.hincrby(key, field, amount), (key,), 0)

    def hexists(self, indexdb: int, key: KeyT, field: KeyT) -> bool:
        return self._run(indexdb, "hexists", lambda c: bool(c.hexists(key, field)), (key,), False)

    def hlen(self, indexdb: int, key: KeyT) -> int:
        return self._run(indexdb, "hlen", lambda c: c.hlen(key), (key,), 0)

    def hdel(self, indexdb: int, key: KeyT, *fields: KeyT) -> int:
        return self._run(indexdb, "hdel", lambda c: c.hdel(key, *fields), (key,), 0)

    def hkeys(self, indexdb: int, key: KeyT) -> list[Any]:
        return self._run(indexdb, "hkeys", lambda c: c.hkeys(key), (key,), list)

    def hvals(self, indexdb: int, key: KeyT) -> list[Any]:
        return self._run(indexdb, "hvals", lambda c: c.hvals(key), (key,), list)

    def hgetall(self, indexdb: int, key: KeyT) -> dict[Any, Any]:
        return self._run(indexdb, "hgetall", lambda c: c.hgetall(key), (key,), dict)

    # =========================================================================
    # Lists
    # Neutral: None for elements and status replies, 0 for lengths, [] for ranges.
    # =========================================================================

    def lpush(self, indexdb: int, key: KeyT, *values: ValueT) -> int:
        """LPUSH. Returns the list length after the push."""
        return self._run(indexdb, "lpush", lambda c: c.lpush(key, *values), (key,), 0)

    def rpush(self, indexdb: int, key: KeyT, *values: ValueT) -> int:
        """RPUSH. Returns the list length after the push."""
        return self._run(indexdb, "rpush", lambda c: c.rpush(key, *values), (key,), 0)

    def lset(self, indexdb: int, key: KeyT, index: int, value: ValueT) -> bool | None:
        return self._run(indexdb, "lset", lambda c: c.lset(key, index, value), (key,))

    def lrem(self, indexdb: int, key: KeyT, count: int, value: ValueT) -> int:
        """
        LREM: remove `count` occurrences of `value`.

        count > 0 removes from head to tail, count < 0 from tail to head,
        count == 0 removes all.
        """
        return self._run(indexdb, "lrem", lambda c: c.lrem(key, count, value), (key,), 0)

    def ltrim(self, indexdb: int, key: KeyT, start: int, end: int) -> bool | None:
        return self._run(indexdb, "ltrim", lambda c: c.ltrim(key, start, end), (key,))

    def lpop(self, indexdb: int, key: KeyT) -> Any:
        return self._run(indexdb, "lpop", lambda c: c.lpop(key), (key,))

    def rpop(self, indexdb: int, key: KeyT) -> Any:
        return self._run(indexdb, "rpop", lambda c: c.rpop(key), (key,))

    def rpoplpush(self, indexdb: int, src: KeyT, dst: KeyT) -> Any:
        """RPOPLPUSH. Atomic: both keys must live on one shard."""
        return self._run(indexdb, "rpoplpush", lambda c: c.rpoplpush(src, dst), (src, dst))

    def lindex(self, indexdb: int, key: KeyT, index: int) -> Any:
        return self._run(indexdb, "lindex", lambda c: c.lindex(key, index), (key,))

    def llen(self, indexdb: int, key: KeyT) -> int:
        return self._run(indexdb, "llen", lambda c: c.llen(key), (key,), 0)

    def lrange(self, indexdb: int, key: KeyT, start: int, end: int) -> list[Any]:
        return self._run(indexdb, "lrange", lambda c: c.lrange(key, start, end), (key,), list)

    def sort(
        self,
        indexdb: int,
        key: KeyT,
        *,
        start: int | None = None,
        num: int | None = None,
        by: str | None = None,
        get: str | Sequence[str] | None = None,
        desc: bool = False,
        alpha: bool = False,
    ) -> list[Any]:
        """
        SORT a list, set or sorted set.

        Args:
            start, num: LIMIT window (both or neither)
            by: External weight pattern (e.g. "weight_*")
            get: Pattern(s) of external values to return instead of elements
            desc: Descending order
            alpha: Lexicographic instead of numeric comparison
        """
        return self._run(
            indexdb,
            "sort",
            lambda c: c.sort(key, start=start, num=num, by=by, get=get, desc=desc, alpha=alpha),
            (key,),
            list,
        )

    # =========================================================================
    # Sets
    # Neutral: None for members, 0 for counts, False for booleans, set() for sets.
    # =========================================================================

    def sadd(self, indexdb: int, key: KeyT, *members: ValueT) -> int:
        return self._run(indexdb, "sadd", lambda c: c.sadd(key, *members), (key,), 0)

    def srem(self, indexdb: int, key: KeyT, *members: ValueT) -> int:
        return self._run(indexdb, "srem", lambda c: c.srem(key, *members), (key,), 0)

    def spop(self, indexdb: int, key: KeyT) -> Any:
        return self._run(indexdb, "spop", lambda c: c.spop(key), (key,))

    def sdiff(self, indexdb: int, *keys: KeyT) -> set[Any]:
        return self._run(indexdb, "sdiff", lambda c: c.sdiff(list(keys)), keys, set)

    def sdiffstore(self, indexdb: int, dst: KeyT, *keys: KeyT) -> int:
        return self._run(
            indexdb, "sdiffstore", lambda c: c.sdiffstore(dst, list(keys)), (dst, *keys), 0
        )

    def sinter(self, indexdb: int, *keys: KeyT) -> set[Any]:
        return self._run(indexdb, "sinter", lambda c: c.sinter(list(keys)), keys, set)

    def sinterstore(self, indexdb: int, dst: KeyT, *keys: KeyT) -> int:
        return self._run(
            indexdb, "sinterstore", lambda c: c.sinterstore(dst, list(keys)), (dst, *keys), 0
        )

    def sunion(self, indexdb: int, *keys: KeyT) -> set[Any]:
        return self._run(indexdb, "sunion", lambda c: c.sunion(list(keys)), keys, set)

    def sunionstore(self, indexdb: int, dst: KeyT, *keys: KeyT) -> int:
        return self._run(
            indexdb, "sunionstore", lambda c: c.sunionstore(dst, list(keys)), (dst, *keys), 0
        )

    def smove(self, indexdb: int, src: KeyT, dst: KeyT, member: ValueT) -> bool:
        return self._run(
            indexdb, "smove", lambda c: bool(c.smove(src, dst, member)), (src, dst), False
        )

    def scard(self, indexdb: int, key: KeyT) -> int:
        return self._run(indexdb, "scard", lambda c: c.scard(key), (key,), 0)

    def sismember(self, indexdb: int, key: KeyT, member: ValueT) -> bool:
        return self._run(
            indexdb, "sismember", lambda c: bool(c.sismember(key, member)), (key,), False
        )

    def srandmember(self, indexdb: int, key: KeyT) -> Any:
        return self._run(indexdb, "srandmember", lambda c: c.srandmember(key), (key,))

    def smembers(self, indexdb: int, key: KeyT) -> set[Any]:
        return self._run(indexdb, "smembers", lambda c: c.smembers(key), (key,), set)

    # =========================================================================
    # Sorted sets
    # Neutral: None for rank/score reads, 0 for counts, 0.0 for ZINCRBY,
    # [] for ranges.
    # =========================================================================

    def zadd(self, indexdb: int, key: KeyT, score: float, member: ValueT) -> int:
        """ZADD one member. Returns 1 if the member is new, 0 if its score was updated."""
        return self._run(indexdb, "zadd", lambda c: c.zadd(key, {member: score}), (key,), 0)

    def zrange(self, indexdb: int, key: KeyT, start: int, end: int) -> list[Any]:
        """ZRANGE by rank, lowest score first."""
        return self._run(indexdb, "zrange", lambda c: c.zrange(key, start, end), (key,), list)

    def zrevrange(self, indexdb: int, key: KeyT, start: int, end: int) -> list[Any]:
        """ZREVRANGE by rank, highest score first."""
        return self._run(
            indexdb, "zrevrange", lambda c: c.zrevrange(key, start, end), (key,), list
        )

    def zrevrange_with_scores(
        self, indexdb: int, key: KeyT, start: int, end: int
    ) -> list[tuple[Any, float]]:
        """ZREVRANGE ... WITHSCORES as `(member, score)` pairs."""
        return self._run(
            indexdb,
            "zrevrange_with_scores",
            lambda c: c.zrevrange(key, start, end, withscores=True),
            (key,),
            list,
        )

    def zrangebyscore(
        self,
        indexdb: int,
        key: KeyT,
        min: float | str,
        max: float | str,
        start: int | None = None,
        num: int | None = None,
    ) -> list[Any]:
        """
        ZRANGEBYSCORE between `min` and `max` inclusive.

        Bounds accept "-inf"/"+inf" and the "(" prefix for exclusive bounds.
        """
        return self._run(
            indexdb,
            "zrangebyscore",
            lambda c: c.zrangebyscore(key, min, max, start=start, num=num),
            (key,),
            list,
        )

    def zrevrangebyscore(
        self,
        indexdb: int,
        key: KeyT,
        max: float | str,
        min: float | str,
        start: int | None = None,
        num: int | None = None,
    ) -> list[Any]:
        """ZREVRANGEBYSCORE from `max` down to `min`."""
        return self._run(
            indexdb,
            "zrevrangebyscore",
            lambda c: c.zrevrangebyscore(key, max, min, start=start, num=num),
            (key,),
            list,
        )

    def zcount(self, indexdb: int, key: KeyT, min: float | str, max: float | str) -> int:
        return self._run(indexdb, "zcount", lambda c: c.zcount(key, min, max), (key,), 0)

    def zrem(self, indexdb: int, key: KeyT, *members: ValueT) -> int:
        return self._run(indexdb, "zrem", lambda c: c.zrem(key, *members), (key,), 0)

    def zincrby(self, indexdb: int, key: KeyT, amount: float, member: ValueT) -> float:
        """ZINCRBY. Returns the member's new score."""
        return self._run(
            indexdb, "zincrby", lambda c: c.zincrby(key, amount, member), (key,), 0.0
        )

    def zrank(self, indexdb: int, key: KeyT, member: ValueT) -> int | None:
        return self._run(indexdb, "zrank", lambda c: c.zrank(key, member), (key,))

    def zrevrank(self, indexdb: int, key: KeyT, member: ValueT) -> int | None:
        return self._run(indexdb, "zrevrank", lambda c: c.zrevrank(key, member), (key,))

    def zcard(self, indexdb: int, key: KeyT) -> int:
        return self._run(indexdb, "zcard", lambda c: c.zcard(key), (key,), 0)

    def zscore(self, indexdb: int, key: KeyT, member: ValueT) -> float | None:
        return self._run(indexdb, "zscore", lambda c: c.zscore(key, member), (key,))

    def zremrangebyrank(self, indexdb: int, key: KeyT, start: int, end: int) -> int:
        return self._run(
            indexdb, "zremrangebyrank", lambda c: c.zremrangebyrank(key, start, end), (key,), 0
        )

    def zremrangebyscore(
        self, indexdb: int, key: KeyT, min: float | str, max: float | str
    ) -> int:
        return self._run(
            indexdb, "zremrangebyscore", lambda c: c.zremrangebyscore(key, min, max), (key,), 0
        )

    # =========================================================================
    # Key management
    # =========================================================================

    def keys(self, indexdb: int, pattern: KeyT = "*") -> list[Any]:
        """
        KEYS matching a glob pattern. Neutral: [].

        KEYS walks the whole keyspace of the DB (O(N), blocks the server
        while it runs). On a sharded pool it runs on every shard.
        """
        return self._executor.execute_all(
            indexdb,
            "keys",
            lambda c: c.keys(pattern),
            lambda results: [k for shard_keys in results for k in shard_keys],
            neutral=list,
        )

    def type(self, indexdb: int, key: KeyT) -> Any:
        """TYPE: "string", "list", "set", "zset", "hash" or "none"."""
        return self._run(indexdb, "type", lambda c: c.type(key), (key,))

    def flushdb(self, indexdb: int) -> bool | None:
        """FLUSHDB: remove every key of the DB (every shard on a sharded pool)."""
        return self._executor.execute_all(
            indexdb, "flushdb", lambda c: c.flushdb(), lambda results: all(results)
        )

    # =========================================================================
    # Namespaces
    # =========================================================================

    @staticmethod
    def namespaced_key(namespace: str, arg: Any) -> str:
        """Cache key for `arg` under `namespace`: `user::1`."""
        return f"{namespace}{NAMESPACE_SEPARATOR}{arg}"

    def evict_namespace(self, indexdb: int, namespace: str) -> int:
        """
        Delete every `<namespace>::*` key. Returns the number deleted.

        Built on KEYS, with the same cost. Deletion is split per shard
        regardless of the multi-key policy since DEL of independent keys
        needs no cross-shard atomicity.
        """
        pattern = _GLOB_SPECIAL.sub(r"\\\1", namespace) + NAMESPACE_SEPARATOR + "*"
        found = self.keys(indexdb, pattern)
        if not found:
            return 0
        removed = self._executor.execute_grouped(
            indexdb,
            "delete",
            found,
            lambda c, shard_keys: c.delete(*shard_keys),
            lambda results: sum(count for _, count in results),
            neutral=0,
        )
        logger.info(
            "Cache namespace evicted",
            stage="EXEC.1",
            namespace=namespace,
            indexdb=indexdb,
            removed=removed,
        )
        return removed

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def health_check(self) -> dict[str, Any]:
        return self.pool.health_check()

    def stats(self) -> dict[str, Any]:
        return self.pool.stats()

    def close(self, timeout: float | None = None) -> None:
        """Close the underlying pool (shared with `strict`)."""
        self.pool.close(timeout)


def _reassemble(keys: Sequence[KeyT], results: list[tuple[list[KeyT], list[Any]]]) -> list[Any]:
    by_key: dict[Any, Any] = {}
    for shard_keys, values in results:
        by_key.update(zip(shard_keys, values))
    return [by_key.get(k) for k in keys]
