"""Monitoring: Prometheus metrics for the cache access layer."""

from redis_facade.infrastructure.monitoring.metrics_collector import (
    MetricsCollector,
    get_metrics_collector,
)

__all__ = ["MetricsCollector", "get_metrics_collector"]
