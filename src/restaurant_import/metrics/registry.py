"""
Prometheus instruments for the import pipeline, registered on the global REGISTRY.
"""

from prometheus_client import Counter, Histogram


# --- Batch writer ---

BATCH_WRITE_ATTEMPTS_TOTAL = Counter(
    "batch_write_attempts_total",
    "Batch write calls by outcome (ok, partial, error)",
    ["table", "outcome"],
)

BATCH_WRITE_ITEMS_TOTAL = Counter(
    "batch_write_items_total",
    "Items resolved by the batch writer (written or failed after retries)",
    ["table", "result"],
)

BATCH_WRITE_LATENCY = Histogram(
    "batch_write_latency_seconds",
    "Latency of a single batch write call",
    ["table"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10],
)


# --- Run-level metrics (mirrors of the external metrics channel) ---

IMPORT_METRIC_TOTAL = Counter(
    "import_metric_total",
    "Run-level import counts reported to the metrics channel",
    ["metric", "table"],
)

IMPORT_LATENCY_MS = Histogram(
    "import_latency_ms",
    "End-to-end import run latency in milliseconds",
    ["table"],
    buckets=[10, 50, 100, 250, 500, 1000, 2500, 5000, 10000, 30000, 60000, 300000],
)


class MetricsRegistry:
    """Structured access to the pipeline's Prometheus instruments."""

    batch_write_attempts_total = BATCH_WRITE_ATTEMPTS_TOTAL
    batch_write_items_total = BATCH_WRITE_ITEMS_TOTAL
    batch_write_latency = BATCH_WRITE_LATENCY
    import_metric_total = IMPORT_METRIC_TOTAL
    import_latency_ms = IMPORT_LATENCY_MS


# Singleton instance
metrics_registry = MetricsRegistry()
