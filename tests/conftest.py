"""
Pytest Configuration and Shared Test Fixtures

This module provides pytest configuration and reusable fixtures for all tests.
All fixtures defined here are automatically available to all test files.

Cache endpoints are played by fakeredis servers: one FakeServer per
"host:port", so logical DB selection and shard placement are observable by
inspecting the server a key landed on.
"""

from unittest.mock import MagicMock

import fakeredis
import pytest

from redis_facade.core.config.settings import Settings
from redis_facade.infrastructure.cache.pool_config import Endpoint, PoolConfig
from redis_facade.infrastructure.monitoring.metrics_collector import MetricsCollector


# ============================================================================
# Fake Cache Servers
# ============================================================================


@pytest.fixture
def fake_servers():
    """
    Registry of fake cache servers keyed by "host:port".

    Servers are created on first connection to an endpoint.
    """
    return {}


@pytest.fixture
def client_factory(fake_servers):
    """
    Wire-client factory that connects endpoints to fake servers.

    Matches the Connection client_factory signature:
    (endpoint, socket_timeout, decode_responses) -> redis.Redis
    """

    def factory(endpoint, socket_timeout, decode_responses):
        server = fake_servers.setdefault(endpoint.address, fakeredis.FakeServer())
        return fakeredis.FakeRedis(
            server=server, decode_responses=decode_responses, single_connection_client=True
        )

    return factory


@pytest.fixture
def counting_client_factory(client_factory):
    """client_factory that counts how many sockets were opened."""

    def factory(endpoint, socket_timeout, decode_responses):
        factory.opened += 1
        return client_factory(endpoint, socket_timeout, decode_responses)

    factory.opened = 0
    return factory


def server_client(fake_servers, address, db=0, decode_responses=True):
    """Direct client to a fake server, bypassing the pools (for assertions)."""
    server = fake_servers.setdefault(address, fakeredis.FakeServer())
    return fakeredis.FakeRedis(server=server, db=db, decode_responses=decode_responses)


@pytest.fixture
def inspect_server(fake_servers):
    """Return a direct client for (address, db)."""

    def _inspect(address="localhost:6379", db=0, decode_responses=True):
        return server_client(fake_servers, address, db, decode_responses)

    return _inspect


# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def endpoint():
    return Endpoint("localhost", 6379)


@pytest.fixture
def shard_endpoints():
    return [Endpoint("10.0.0.1", 6379), Endpoint("10.0.0.2", 6379), Endpoint("10.0.0.3", 6379)]


@pytest.fixture
def pool_config():
    """Small pool with a short wait so exhaustion tests stay fast."""
    return PoolConfig(max_total=2, max_idle=2, min_idle=0, max_wait_millis=50)


@pytest.fixture
def make_settings():
    """
    Build Settings from keyword overrides.

    Explicit keyword arguments take precedence over the environment.
    """

    def _make(**overrides):
        return Settings(**overrides)

    return _make


# ============================================================================
# Mock Infrastructure Fixtures
# ============================================================================


@pytest.fixture
def mock_metrics():
    """MetricsCollector mock for asserting recorded errors and failovers."""
    return MagicMock(spec=MetricsCollector)
