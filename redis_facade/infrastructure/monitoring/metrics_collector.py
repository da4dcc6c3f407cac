#!/usr/bin/env python3
"""
Metrics Collector with Prometheus Integration

Records what the cache access layer does and what it swallows:
- Command outcomes by command name
- Errors by command and error kind (the neutral-result policy hides them
  from callers, so they must surface here)
- Borrow wait latency
- Pool active/idle connection gauges
- Primary failovers

Architectural Decision: prometheus-client for industry-standard metrics

Author: System Architect
Date: 2026-10-19
"""

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    Counter,
    Gauge,
    Histogram,
    Info,
    generate_latest,
)

from redis_facade.core.config.settings import get_settings
from redis_facade.core.logging.logger import get_logger

logger = get_logger(__name__)


# ============================================================================
# Metric Definitions
# ============================================================================

COMMANDS = Counter(
    'redis_facade_commands_total',
    'Total cache commands issued through the executor',
    ['command', 'status']  # success, error
)

COMMAND_ERRORS = Counter(
    'redis_facade_command_errors_total',
    'Total command errors by kind',
    ['command', 'error_type']
)

COMMAND_DURATION = Histogram(
    'redis_facade_command_duration_seconds',
    'Command duration including borrow and DB selection',
    ['command'],
    buckets=(0.0005, 0.001, 0.0025, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 1.0)
)

BORROW_WAIT = Histogram(
    'redis_facade_borrow_wait_seconds',
    'Time spent waiting for a pooled connection',
    ['pool'],
    buckets=(0.0001, 0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0)
)

POOL_ACTIVE = Gauge(
    'redis_facade_pool_active_connections',
    'Connections currently on loan',
    ['pool']
)

POOL_IDLE = Gauge(
    'redis_facade_pool_idle_connections',
    'Idle connections parked in the pool',
    ['pool']
)

FAILOVERS = Counter(
    'redis_facade_failovers_total',
    'Primary changes observed by the arbiter pool',
    ['master']
)

APP_INFO = Info(
    'redis_facade_app',
    'Application information'
)


class MetricsCollector:
    """
    Centralized metrics collector.

    STAGE-M: Metrics collection

    Usage:
        metrics = get_metrics_collector()
        metrics.record_command("get", "success")
        metrics.record_error("get", "ConnectionBrokenError")
    """

    def __init__(self):
        settings = get_settings()

        APP_INFO.info({
            'version': settings.app.APP_VERSION,
            'environment': settings.app.ENVIRONMENT,
            'app_name': settings.app.APP_NAME,
        })

        logger.info("Metrics collector initialized", stage="M.0")

    # =========================================================================
    # Command Metrics
    # =========================================================================

    def record_command(self, command: str, status: str) -> None:
        """Record a command outcome."""
        COMMANDS.labels(command=command, status=status).inc()

    def record_command_duration(self, command: str, duration_seconds: float) -> None:
        """Record command duration."""
        COMMAND_DURATION.labels(command=command).observe(duration_seconds)

    def record_error(self, command: str, error_type: str) -> None:
        """Record an error swallowed or raised by the executor."""
        COMMAND_ERRORS.labels(command=command, error_type=error_type).inc()

    # =========================================================================
    # Pool Metrics
    # =========================================================================

    def record_borrow_wait(self, pool: str, duration_seconds: float) -> None:
        """Record how long a borrower waited for a connection."""
        BORROW_WAIT.labels(pool=pool).observe(duration_seconds)

    def set_pool_connections(self, pool: str, active: int, idle: int) -> None:
        """Set active and idle connection gauges for a pool."""
        POOL_ACTIVE.labels(pool=pool).set(active)
        POOL_IDLE.labels(pool=pool).set(idle)

    def record_failover(self, master: str) -> None:
        """Record a primary change."""
        FAILOVERS.labels(master=master).inc()

    # =========================================================================
    # Export
    # =========================================================================

    def get_prometheus_metrics(self) -> bytes:
        """Get Prometheus text format metrics."""
        return generate_latest(REGISTRY)

    def get_content_type(self) -> str:
        """Get Prometheus content type."""
        return CONTENT_TYPE_LATEST


# Global metrics collector
_metrics: MetricsCollector | None = None


def get_metrics_collector() -> MetricsCollector:
    """Get global metrics collector."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics
