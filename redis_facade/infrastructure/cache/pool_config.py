"""
Endpoint and pool sizing configuration.

Both types are immutable once a pool is built. PoolConfig validates its
invariants on construction and raises ConfigurationError, so a bad pool
configuration aborts startup instead of surfacing on the first borrow.
"""

from dataclasses import dataclass

from redis_facade.core.exceptions import ConfigurationError


@dataclass(frozen=True)
class Endpoint:
    """One cache server address with an optional credential."""

    host: str
    port: int
    password: str | None = None

    def __post_init__(self):
        if not self.host:
            raise ConfigurationError("Endpoint host must not be empty")
        if not 0 < self.port < 65536:
            raise ConfigurationError(
                f"Endpoint port out of range: {self.port}",
                details={"host": self.host, "port": self.port},
            )

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"

    def __str__(self) -> str:
        return self.address

    def __repr__(self) -> str:
        # Keep credentials out of reprs that end up in logs
        auth = ", password=***" if self.password else ""
        return f"Endpoint(host={self.host!r}, port={self.port}{auth})"


@dataclass(frozen=True)
class PoolConfig:
    """
    Sizing and blocking policy for a connection pool.

    Attributes:
        max_total: Hard cap on open connections (on loan + idle)
        max_idle: Idle connections kept warm; extra returns are destroyed
        min_idle: Idle connections pre-warmed and topped up after evictions
        max_wait_millis: How long a borrower waits when the pool is saturated
        block_when_exhausted: Wait up to max_wait_millis (True) or fail at once (False)
        shutdown_timeout_millis: How long close() waits for borrowed connections

    Invariants: 0 <= min_idle <= max_idle <= max_total, max_wait_millis >= 0.
    """

    max_total: int = 8
    max_idle: int = 8
    min_idle: int = 0
    max_wait_millis: int = 3000
    block_when_exhausted: bool = True
    shutdown_timeout_millis: int = 5000

    def __post_init__(self):
        details = {
            "max_total": self.max_total,
            "max_idle": self.max_idle,
            "min_idle": self.min_idle,
            "max_wait_millis": self.max_wait_millis,
        }
        if self.max_total < 1:
            raise ConfigurationError("max_total must be >= 1", details=details)
        if self.min_idle < 0:
            raise ConfigurationError("min_idle must be >= 0", details=details)
        if self.min_idle > self.max_idle:
            raise ConfigurationError("min_idle must not exceed max_idle", details=details)
        if self.max_idle > self.max_total:
            raise ConfigurationError("max_idle must not exceed max_total", details=details)
        if self.max_wait_millis < 0:
            raise ConfigurationError("max_wait_millis must be >= 0", details=details)
        if self.shutdown_timeout_millis < 0:
            raise ConfigurationError("shutdown_timeout_millis must be >= 0", details=details)

    @property
    def max_wait_seconds(self) -> float:
        return self.max_wait_millis / 1000.0

    @property
    def shutdown_timeout_seconds(self) -> float:
        return self.shutdown_timeout_millis / 1000.0

    @classmethod
    def from_settings(cls, pool_settings) -> "PoolConfig":
        """Build from the `settings.pool` group."""
        return cls(
            max_total=pool_settings.REDIS_POOL_MAX_TOTAL,
            max_idle=pool_settings.REDIS_POOL_MAX_IDLE,
            min_idle=pool_settings.REDIS_POOL_MIN_IDLE,
            max_wait_millis=pool_settings.REDIS_POOL_MAX_WAIT_MILLIS,
            block_when_exhausted=pool_settings.REDIS_POOL_BLOCK_WHEN_EXHAUSTED,
            shutdown_timeout_millis=pool_settings.REDIS_POOL_SHUTDOWN_TIMEOUT_MS,
        )
