"""
Unit Tests for CommandExecutor

Tests release guarantees and the neutral-result / raise policies.
"""

import pytest

from redis_facade.core.exceptions import (
    ArgumentOutOfRangeError,
    CommandFailedError,
    ConnectionBrokenError,
)
from redis_facade.infrastructure.cache.executor import CommandExecutor
from redis_facade.infrastructure.cache.pool_config import PoolConfig
from redis_facade.infrastructure.cache.pools.single import SinglePool


@pytest.fixture
def pool(endpoint, client_factory, mock_metrics):
    pool = SinglePool(
        endpoint, PoolConfig(max_total=1, max_idle=1, max_wait_millis=50),
        client_factory=client_factory, metrics=mock_metrics,
    )
    yield pool
    pool.close(timeout=0)


@pytest.fixture
def executor(pool, mock_metrics):
    return CommandExecutor(pool, metrics=mock_metrics)


@pytest.mark.unit
class TestExecute:

    def test_success(self, executor, pool, mock_metrics):
        result = executor.execute(4, "set", lambda c: c.set("k", "v"))

        assert result is True
        assert executor.execute(4, "get", lambda c: c.get("k")) == "v"
        assert pool.pool_stats()["active"] == 0
        mock_metrics.record_command.assert_called_with("get", "success")

    def test_failure_returns_neutral(self, executor, pool, mock_metrics):
        executor.execute(0, "set", lambda c: c.set("text", "abc"))

        result = executor.execute(0, "incr", lambda c: c.incr("text"), neutral=0)

        assert result == 0
        assert pool.pool_stats()["active"] == 0
        mock_metrics.record_error.assert_called_with("incr", "CommandFailedError")
        mock_metrics.record_command.assert_called_with("incr", "error")

    def test_neutral_factory_gives_fresh_value(self, executor, fake_servers):
        executor.execute(0, "ping", lambda c: c.ping())
        fake_servers["localhost:6379"].connected = False

        first = executor.execute(0, "lrange", lambda c: c.lrange("l", 0, -1), neutral=list)
        first.append("mutated")
        second = executor.execute(0, "lrange", lambda c: c.lrange("l", 0, -1), neutral=list)

        assert second == []

    def test_out_of_range_db_is_neutral(self, executor, mock_metrics):
        assert executor.execute(16, "get", lambda c: c.get("k")) is None
        mock_metrics.record_error.assert_called_with("get", "ArgumentOutOfRangeError")

    def test_exhausted_pool_is_neutral(self, executor, pool, mock_metrics):
        held = pool.borrow()

        assert executor.execute(0, "get", lambda c: c.get("k")) is None
        mock_metrics.record_error.assert_called_with("get", "PoolExhaustedError")
        pool.release(held)

    def test_broken_connection_is_evicted(self, executor, pool, fake_servers):
        executor.execute(0, "ping", lambda c: c.ping())
        fake_servers["localhost:6379"].connected = False

        assert executor.execute(0, "get", lambda c: c.get("k")) is None
        assert pool.pool_stats()["idle"] == 0

        # Pool recovers once the server is back
        fake_servers["localhost:6379"].connected = True
        assert executor.execute(0, "set", lambda c: c.set("k", "v")) is True

    def test_non_cache_exception_propagates_and_releases(self, executor, pool):
        def closure(conn):
            raise RuntimeError("bug in caller")

        with pytest.raises(RuntimeError):
            executor.execute(0, "custom", closure)

        assert pool.pool_stats()["active"] == 0


@pytest.mark.unit
class TestRaiseErrors:

    @pytest.fixture
    def strict(self, pool, mock_metrics):
        return CommandExecutor(pool, raise_errors=True, metrics=mock_metrics)

    def test_command_failure_raises(self, strict, pool):
        strict.execute(0, "set", lambda c: c.set("text", "abc"))

        with pytest.raises(CommandFailedError):
            strict.execute(0, "incr", lambda c: c.incr("text"))
        assert pool.pool_stats()["active"] == 0

    def test_out_of_range_raises(self, strict):
        with pytest.raises(ArgumentOutOfRangeError):
            strict.execute(-1, "get", lambda c: c.get("k"))

    def test_transport_failure_raises(self, strict, fake_servers, mock_metrics):
        strict.execute(0, "ping", lambda c: c.ping())
        fake_servers["localhost:6379"].connected = False

        with pytest.raises(ConnectionBrokenError):
            strict.execute(0, "get", lambda c: c.get("k"))
        mock_metrics.record_error.assert_called_with("get", "ConnectionBrokenError")


@pytest.mark.unit
class TestFanOut:

    def test_execute_all_single_pool(self, executor):
        executor.execute(0, "set", lambda c: c.set("a", "1"))

        keys = executor.execute_all(
            0, "keys", lambda c: c.keys("*"), lambda results: sum(results, []), neutral=list
        )

        assert keys == ["a"]

    def test_execute_grouped_single_pool(self, executor):
        executor.execute(0, "set", lambda c: c.set("a", "1"))

        result = executor.execute_grouped(
            0,
            "mget",
            ["a", "b"],
            lambda c, keys: c.mget(keys),
            lambda results: [v for _, values in results for v in values],
            neutral=list,
        )

        assert result == ["1", None]
