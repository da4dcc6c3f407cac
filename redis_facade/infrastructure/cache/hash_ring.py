"""Consistent-hash ring mapping keys to shard indexes.

Each shard contributes a fixed set of virtual nodes so load stays even and
adding or removing a shard only moves the keys on its own arcs. Placement is
a pure function of the ordered shard list and the virtual node count, so
every process builds the same ring.
"""

from __future__ import annotations

import bisect
import hashlib
from collections.abc import Sequence

from redis_facade.core.config.constants import DEFAULT_VIRTUAL_NODES


def stable_hash(data: bytes) -> int:
    """64-bit ring position. MD5 for uniform distribution, not security."""
    digest = hashlib.md5(data).digest()
    return int.from_bytes(digest[:8], byteorder="big", signed=False)


def key_bytes(key: str | bytes | int | float) -> bytes:
    """Encode a key the way the wire client would."""
    if isinstance(key, bytes):
        return key
    if isinstance(key, memoryview):
        return key.tobytes()
    return str(key).encode("utf-8")


def hash_tag(key: bytes) -> bytes:
    """Return the `{tag}` part of a key, or the whole key if it has none.

    Only the first `{...}` pair with a non-empty body counts, so
    `user:{42}:profile` and `user:{42}:settings` land on the same shard.
    """
    start = key.find(b"{")
    if start == -1:
        return key
    end = key.find(b"}", start + 1)
    if end == -1 or end == start + 1:
        return key
    return key[start + 1:end]


class HashRing:
    """Ring over `shard_count` shards.

    Parameters:
        shard_names: Stable shard identities (usually "host:port"), in
            configuration order.
        virtual_nodes: Ring points per shard.
        use_hash_tags: Hash only the `{tag}` part of keys.
    """

    def __init__(
        self,
        shard_names: Sequence[str],
        virtual_nodes: int = DEFAULT_VIRTUAL_NODES,
        use_hash_tags: bool = False,
    ) -> None:
        if not shard_names:
            raise ValueError("HashRing needs at least one shard")
        if virtual_nodes < 1:
            raise ValueError("virtual_nodes must be >= 1")
        self._shard_count = len(shard_names)
        self._virtual_nodes = virtual_nodes
        self._use_hash_tags = use_hash_tags

        points: dict[int, int] = {}
        for index, name in enumerate(shard_names):
            for n in range(virtual_nodes):
                # Keyed by slot index, not address
                point = stable_hash(f"SHARD-{index}-NODE-{n}".encode("utf-8"))
                # First writer wins on the (astronomically rare) collision
                points.setdefault(point, index)
        self._positions = sorted(points)
        self._owners = [points[p] for p in self._positions]
        self._names = list(shard_names)

    @property
    def shard_count(self) -> int:
        return self._shard_count

    @property
    def virtual_nodes(self) -> int:
        return self._virtual_nodes

    def shard_for(self, key: str | bytes) -> int:
        """Index of the shard owning `key`."""
        data = key_bytes(key)
        if self._use_hash_tags:
            data = hash_tag(data)
        h = stable_hash(data)
        i = bisect.bisect_left(self._positions, h)
        if i == len(self._positions):
            i = 0
        return self._owners[i]

    def shards_for(self, keys: Sequence[str | bytes]) -> dict[int, list]:
        """Group keys by owning shard, preserving key order within each group."""
        result: dict[int, list] = {}
        for key in keys:
            result.setdefault(self.shard_for(key), []).append(key)
        return result

    def __repr__(self) -> str:
        return f"HashRing(shards={self._names}, virtual_nodes={self._virtual_nodes})"
