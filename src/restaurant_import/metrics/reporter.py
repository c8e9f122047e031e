"""
Metrics reporters for run-level import counts.

Reporters are best-effort: a failure to deliver a metric is logged and absorbed, it never
changes the outcome of an import.
"""

from __future__ import annotations

import asyncio
from typing import Any, Literal, Optional, Protocol

import boto3
from loguru import logger

from ..utils import utc_now
from .registry import IMPORT_LATENCY_MS, IMPORT_METRIC_TOTAL

MetricUnit = Literal["Count", "Milliseconds"]


class MetricsReporter(Protocol):
    async def report(
        self, metric_name: str, value: float, table: str, unit: MetricUnit = "Count"
    ) -> None:
        """Emit one metric dimensioned by `table`. Must never raise."""
        ...


class PrometheusMetricsReporter:
    """Records run-level metrics on the process Prometheus registry."""

    async def report(
        self, metric_name: str, value: float, table: str, unit: MetricUnit = "Count"
    ) -> None:
        try:
            if unit == "Milliseconds":
                IMPORT_LATENCY_MS.labels(table=table).observe(value)
            else:
                IMPORT_METRIC_TOTAL.labels(metric=metric_name, table=table).inc(value)
        except Exception as exc:
            logger.error(f"Error recording metric {metric_name}={value} for {table}: {exc}")


def create_cloudwatch_client(region: Optional[str] = None, endpoint_url: Optional[str] = None):
    client_kwargs: dict[str, Any] = {"service_name": "cloudwatch"}
    if region:
        client_kwargs["region_name"] = region
    if endpoint_url:
        client_kwargs["endpoint_url"] = endpoint_url
    return boto3.client(**client_kwargs)


class CloudWatchMetricsReporter:
    """PutMetricData under an environment-scoped namespace, dimension `Table`.

    Also mirrors every value into Prometheus so local scrapes match what CloudWatch saw.
    """

    def __init__(self, namespace: str, client: Any = None, *, mirror: bool = True):
        self.namespace = namespace
        self.client = client or create_cloudwatch_client()
        self._mirror = PrometheusMetricsReporter() if mirror else None

    def _put(self, metric_name: str, value: float, table: str, unit: str) -> None:
        self.client.put_metric_data(
            Namespace=self.namespace,
            MetricData=[
                {
                    "MetricName": metric_name,
                    "Value": value,
                    "Unit": unit,
                    "Dimensions": [{"Name": "Table", "Value": table}],
                    "Timestamp": utc_now(),
                }
            ],
        )

    async def report(
        self, metric_name: str, value: float, table: str, unit: MetricUnit = "Count"
    ) -> None:
        if self._mirror:
            await self._mirror.report(metric_name, value, table, unit)
        try:
            await asyncio.to_thread(self._put, metric_name, value, table, unit)
        except Exception as exc:
            logger.error(f"Error publishing metric {metric_name} to {self.namespace}: {exc}")
