"""
Unit Tests for Connection

Tests DB selection, command delegation and error translation against a
fake cache server.
"""

from unittest.mock import MagicMock, patch

import pytest
import redis

from redis_facade.core.exceptions import (
    ArgumentOutOfRangeError,
    CommandFailedError,
    ConnectionBrokenError,
)
from redis_facade.infrastructure.cache.connection import COMMANDS, Connection


@pytest.fixture
def conn(endpoint, client_factory):
    connection = Connection(endpoint, client_factory=client_factory)
    yield connection
    connection.close()


@pytest.mark.unit
class TestConnectionOpen:

    def test_open_pings_server(self, conn):
        assert conn.healthy
        assert conn.db == 0

    def test_open_failure_raises_connection_broken(self, endpoint, client_factory, fake_servers):
        import fakeredis

        server = fakeredis.FakeServer()
        server.connected = False
        fake_servers[endpoint.address] = server

        with pytest.raises(ConnectionBrokenError) as exc_info:
            Connection(endpoint, client_factory=client_factory)

        assert exc_info.value.details["endpoint"] == "localhost:6379"

    def test_default_factory_builds_single_socket_client(self):
        from redis_facade.infrastructure.cache.connection import default_client_factory
        from redis_facade.infrastructure.cache.pool_config import Endpoint

        with patch("redis_facade.infrastructure.cache.connection.redis.Redis") as redis_cls:
            default_client_factory(Endpoint("10.0.0.9", 6380, "pw"), 1.5, False)

        kwargs = redis_cls.call_args.kwargs
        assert kwargs["host"] == "10.0.0.9"
        assert kwargs["port"] == 6380
        assert kwargs["password"] == "pw"
        assert kwargs["socket_timeout"] == 1.5
        assert kwargs["decode_responses"] is False
        assert kwargs["single_connection_client"] is True
        assert kwargs["retry"]._retries == 0


@pytest.mark.unit
class TestSelectDb:

    def test_select_db_routes_commands(self, conn, inspect_server):
        conn.select_db(3)
        conn.set("k", "in-db-3")

        assert conn.db == 3
        assert inspect_server(db=3).get("k") == "in-db-3"
        assert inspect_server(db=0).get("k") is None

    @pytest.mark.parametrize("index", [-1, 16, 100, "1", True, None])
    def test_select_db_out_of_range(self, conn, index):
        with pytest.raises(ArgumentOutOfRangeError):
            conn.select_db(index)
        assert conn.db == 0

    def test_select_db_boundaries(self, conn):
        conn.select_db(15)
        assert conn.db == 15
        conn.select_db(0)
        assert conn.db == 0

    def test_select_sticks_to_the_single_socket(self, conn, inspect_server):
        conn.select_db(4)
        for i in range(5):
            conn.set(f"k{i}", i)

        assert conn._client.connection is not None
        assert sorted(inspect_server(db=4).keys("*")) == [f"k{i}" for i in range(5)]
        assert inspect_server(db=0).keys("*") == []


@pytest.mark.unit
class TestCommandExecution:

    def test_attribute_delegation(self, conn):
        assert conn.set("a", "1") is True
        assert conn.get("a") == "1"
        assert conn.incr("a") == 2

    def test_unknown_attribute(self, conn):
        with pytest.raises(AttributeError):
            conn.not_a_command  # noqa: B018

    def test_unknown_command(self, conn):
        with pytest.raises(ArgumentOutOfRangeError):
            conn.execute("shutdown")

    def test_catalog_covers_data_commands(self):
        for name in ("get", "hgetall", "rpoplpush", "sunionstore", "zrevrangebyscore", "flushdb"):
            assert name in COMMANDS

    def test_server_error_becomes_command_failed(self, conn):
        conn.set("text", "abc")

        with pytest.raises(CommandFailedError):
            conn.incr("text")

        # Connection stays usable
        assert conn.healthy
        assert conn.get("text") == "abc"

    def test_invalid_argument_becomes_out_of_range(self, conn):
        with pytest.raises(ArgumentOutOfRangeError):
            conn.set("k", {"not": "encodable"})
        assert conn.healthy

    def test_transport_error_marks_broken(self, conn, fake_servers):
        fake_servers["localhost:6379"].connected = False

        with pytest.raises(ConnectionBrokenError):
            conn.get("k")

        assert not conn.healthy

    def test_undecodable_reply_becomes_command_failed(self, conn, inspect_server):
        inspect_server(decode_responses=False).set("bin", b"\xff\xfe")

        with pytest.raises(CommandFailedError) as exc_info:
            conn.get("bin")

        assert exc_info.value.details["cause"]["type"] == "UnicodeDecodeError"
        assert not conn.healthy

    def test_timeout_marks_broken(self, endpoint):
        client = MagicMock()
        client.get.side_effect = redis.TimeoutError("Timeout reading from socket")
        conn = Connection(endpoint, client_factory=lambda *_: client)

        with pytest.raises(ConnectionBrokenError):
            conn.get("k")
        assert not conn.healthy


@pytest.mark.unit
class TestLifecycle:

    def test_invalidate_fails_next_command(self, conn):
        conn.invalidate()

        with pytest.raises(ConnectionBrokenError, match="failover"):
            conn.get("k")
        assert not conn.healthy

    def test_close_is_idempotent(self, conn):
        conn.close()
        conn.close()

        assert conn.closed
        with pytest.raises(ConnectionBrokenError):
            conn.get("k")

    def test_mark_broken(self, conn):
        conn.mark_broken()
        assert not conn.healthy

    def test_repr(self, conn):
        assert "localhost:6379" in repr(conn)
