"""Run-level metrics reporters and process Prometheus instruments."""

from .registry import MetricsRegistry, metrics_registry
from .reporter import (
    CloudWatchMetricsReporter,
    MetricsReporter,
    MetricUnit,
    PrometheusMetricsReporter,
)

__all__ = [
    "MetricsRegistry",
    "metrics_registry",
    "MetricsReporter",
    "MetricUnit",
    "PrometheusMetricsReporter",
    "CloudWatchMetricsReporter",
]
