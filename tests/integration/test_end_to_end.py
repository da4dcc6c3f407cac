"""
End-to-End Scenarios

Each topology is booted through create_cache_service() from Settings, the
way an application would, with fake servers standing in for the cache
nodes.
"""

import threading
from unittest.mock import MagicMock

import pytest

from redis_facade.core.exceptions import ArgumentOutOfRangeError, CrossShardError
from redis_facade.infrastructure.cache.factory import create_cache_service
from redis_facade.infrastructure.cache.pool_config import Endpoint

SHARD_HOSTS = "10.0.0.1,10.0.0.2,10.0.0.3"


@pytest.fixture
def services():
    created = []
    yield created
    for service in created:
        service.close(timeout=0)


@pytest.fixture
def single(make_settings, client_factory, mock_metrics, services):
    service = create_cache_service(
        make_settings(REDIS_TOPOLOGY="single", REDIS_HOST="localhost", REDIS_PORT="6379"),
        client_factory=client_factory,
        metrics=mock_metrics,
    )
    services.append(service)
    return service


@pytest.fixture
def make_sharded(make_settings, client_factory, mock_metrics, services):
    def _make(policy="strict"):
        service = create_cache_service(
            make_settings(
                REDIS_TOPOLOGY="sharded",
                REDIS_HOST=SHARD_HOSTS,
                REDIS_PORT="6379,6379,6379",
                REDIS_SHARD_MULTIKEY_POLICY=policy,
            ),
            client_factory=client_factory,
            metrics=mock_metrics,
        )
        services.append(service)
        return service

    return _make


def on_different_shards(pool, a, b):
    return pool.ring.shard_for(a) != pool.ring.shard_for(b)


@pytest.mark.integration
class TestSingleTopology:

    def test_setex_get_ttl_delete(self, single):
        assert single.setex(3, "k", "v", 600) is True
        assert single.get(3, "k") == "v"
        assert 0 < single.ttl(3, "k") <= 600
        assert single.delete(3, "k") == 1
        assert single.get(3, "k") is None

    def test_concurrent_writers_on_different_dbs(self, single, inspect_server):
        barrier = threading.Barrier(2)

        def write(db, value):
            barrier.wait()
            for _ in range(50):
                single.setex(db, "a", value, 60)

        threads = [threading.Thread(target=write, args=(1, "1")),
                   threading.Thread(target=write, args=(2, "2"))]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert single.get(1, "a") == "1"
        assert single.get(2, "a") == "2"
        assert inspect_server(db=1).get("a") == "1"
        assert inspect_server(db=2).get("a") == "2"

    def test_hash_and_list_round_trip(self, single):
        assert single.hmset(0, "h", {"a": "1", "b": "2"}) is True
        assert single.hgetall(0, "h") == {"a": "1", "b": "2"}
        assert single.lpush(0, "L", "x", "y") == 2
        assert single.lrange(0, "L", 0, -1) == ["y", "x"]
        assert single.rpop(0, "L") == "x"


@pytest.mark.integration
class TestShardedTopology:

    def test_round_trip_and_strict_mget(self, make_sharded):
        cache = make_sharded("strict")

        cache.set(0, "user:1", "A")
        cache.set(0, "user:2", "B")

        assert cache.get(0, "user:1") == "A"
        assert cache.get(0, "user:2") == "B"
        if on_different_shards(cache.pool, "user:1", "user:2"):
            with pytest.raises(CrossShardError):
                cache.strict.mget(0, "user:1", "user:2")
        else:
            assert cache.mget(0, "user:1", "user:2") == ["A", "B"]

    def test_merged_mget(self, make_sharded):
        cache = make_sharded("merge")

        cache.set(0, "user:1", "A")
        cache.set(0, "user:2", "B")

        assert cache.mget(0, "user:1", "user:2") == ["A", "B"]

    def test_keys_land_on_owning_shard_only(self, make_sharded, inspect_server):
        cache = make_sharded()

        cache.set(0, "user:1", "A")

        owner = cache.pool.shard_for("user:1").name
        holders = [address for address in SHARD_HOSTS.split(",")
                   if inspect_server(f"{address}:6379").get("user:1") == "A"]
        assert holders == [owner.split(":")[0]]

    def test_non_zero_db_rejected(self, make_sharded):
        cache = make_sharded()

        with pytest.raises(ArgumentOutOfRangeError):
            cache.strict.set(3, "k", "v")
        assert cache.set(3, "k", "v") is None


@pytest.mark.integration
class TestArbiterTopology:

    def test_failover_moves_traffic_to_new_primary(
        self, make_settings, client_factory, mock_metrics, services, inspect_server
    ):
        sentinel = MagicMock()
        sentinel.discover_master.return_value = ("10.0.0.10", 6379)
        cache = create_cache_service(
            make_settings(REDIS_TOPOLOGY="arbiter", REDIS_HOST="10.0.1.1", REDIS_PORT="26379"),
            client_factory=client_factory,
            sentinel_factory=lambda arbiters, timeout: sentinel,
            metrics=mock_metrics,
            listen=False,
        )
        services.append(cache)

        assert cache.set(0, "k", "v") is True
        assert inspect_server("10.0.0.10:6379").get("k") == "v"

        # Replication to the promoted replica
        inspect_server("10.0.0.11:6379").set("k", "v")
        cache.pool.on_primary_change(Endpoint("10.0.0.11", 6379))

        assert cache.get(0, "k") == "v"
        assert cache.pool.primary.address == "10.0.0.11:6379"
        mock_metrics.record_failover.assert_called_once_with("mymaster")

    def test_failover_without_replication_reads_null(
        self, make_settings, client_factory, mock_metrics, services
    ):
        sentinel = MagicMock()
        sentinel.discover_master.return_value = ("10.0.0.20", 6379)
        cache = create_cache_service(
            make_settings(REDIS_TOPOLOGY="arbiter", REDIS_HOST="10.0.1.1", REDIS_PORT="26379"),
            client_factory=client_factory,
            sentinel_factory=lambda arbiters, timeout: sentinel,
            metrics=mock_metrics,
            listen=False,
        )
        services.append(cache)
        cache.set(0, "k", "v")

        cache.pool.on_primary_change(Endpoint("10.0.0.21", 6379))

        assert cache.get(0, "k") is None
