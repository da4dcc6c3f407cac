"""
Unit Tests for Endpoint and PoolConfig

Tests invariant validation and the settings bridge.
"""

import pytest

from redis_facade.core.config.settings import Settings
from redis_facade.core.exceptions import ConfigurationError
from redis_facade.infrastructure.cache.pool_config import Endpoint, PoolConfig


@pytest.mark.unit
class TestEndpoint:

    def test_address(self):
        assert Endpoint("10.0.0.1", 6380).address == "10.0.0.1:6380"
        assert str(Endpoint("h", 1)) == "h:1"

    def test_repr_masks_password(self):
        text = repr(Endpoint("h", 6379, "secret"))
        assert "secret" not in text
        assert "***" in text

    def test_empty_host_rejected(self):
        with pytest.raises(ConfigurationError):
            Endpoint("", 6379)

    @pytest.mark.parametrize("port", [0, -1, 65536])
    def test_port_out_of_range_rejected(self, port):
        with pytest.raises(ConfigurationError):
            Endpoint("h", port)

    def test_endpoints_are_hashable_values(self):
        assert Endpoint("h", 1) == Endpoint("h", 1)
        assert len({Endpoint("h", 1), Endpoint("h", 1)}) == 1


@pytest.mark.unit
class TestPoolConfig:

    def test_defaults(self):
        config = PoolConfig()

        assert config.max_total == 8
        assert config.max_idle == 8
        assert config.min_idle == 0
        assert config.max_wait_millis == 3000
        assert config.block_when_exhausted is True

    def test_seconds_views(self):
        config = PoolConfig(max_wait_millis=250, shutdown_timeout_millis=1500)

        assert config.max_wait_seconds == 0.25
        assert config.shutdown_timeout_seconds == 1.5

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"max_total": 0, "max_idle": 0},
            {"min_idle": 5, "max_idle": 4},
            {"max_idle": 9, "max_total": 8},
            {"max_wait_millis": -1},
            {"min_idle": -1},
            {"shutdown_timeout_millis": -5},
        ],
    )
    def test_invariant_violations_rejected(self, kwargs):
        with pytest.raises(ConfigurationError):
            PoolConfig(**kwargs)

    def test_zero_wait_is_valid(self):
        assert PoolConfig(max_wait_millis=0).max_wait_seconds == 0

    def test_from_settings(self):
        settings = Settings(
            REDIS_POOL_MAX_TOTAL=16,
            REDIS_POOL_MAX_IDLE=4,
            REDIS_POOL_MIN_IDLE=2,
            REDIS_POOL_MAX_WAIT_MILLIS=100,
            REDIS_POOL_BLOCK_WHEN_EXHAUSTED=False,
        )
        config = PoolConfig.from_settings(settings.pool)

        assert config == PoolConfig(
            max_total=16, max_idle=4, min_idle=2, max_wait_millis=100, block_when_exhausted=False
        )

    def test_from_settings_validates(self):
        settings = Settings(REDIS_POOL_MAX_IDLE=20, REDIS_POOL_MAX_TOTAL=8)
        with pytest.raises(ConfigurationError):
            PoolConfig.from_settings(settings.pool)
