"""
Prometheus metrics for monitoring and observability.

Provides counters and histograms for tracking:
- Dataset ingests by backend
- Relational-to-document fallbacks
- Retrieval requests by storage kind
- API calls by route template
"""

import time
from typing import Callable
from functools import wraps
from prometheus_client import (
    Counter,
    Histogram,
    generate_latest,
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
)

# Create a global registry
REGISTRY = CollectorRegistry()

# ========== Counters ==========

ingest_requests_total = Counter(
    "ingest_requests_total",
    "Total number of dataset ingests",
    ["storage", "status"],  # postgres/mongodb/none, success/failure
    registry=REGISTRY,
)

storage_fallbacks_total = Counter(
    "storage_fallbacks_total",
    "Relational writes that fell back to the document store",
    registry=REGISTRY,
)

ingested_records_total = Counter(
    "ingested_records_total",
    "Total number of records persisted",
    ["storage"],
    registry=REGISTRY,
)

retrieval_requests_total = Counter(
    "retrieval_requests_total",
    "Total number of retrieval requests",
    ["storage", "status"],
    registry=REGISTRY,
)

http_requests_total = Counter(
    "http_requests_total",
    "API calls by route template",
    ["method", "route", "status"],
    registry=REGISTRY,
)

# ========== Histograms ==========

ingest_latency_seconds = Histogram(
    "ingest_latency_seconds",
    "Time to ingest a staged file end to end",
    buckets=(0.05, 0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0),
    registry=REGISTRY,
)

retrieval_latency_seconds = Histogram(
    "retrieval_latency_seconds",
    "Time to execute a retrieval query",
    ["storage"],
    buckets=(0.005, 0.01, 0.05, 0.1, 0.15, 0.2, 0.5, 1.0, 2.0),
    registry=REGISTRY,
)

http_request_latency_seconds = Histogram(
    "http_request_latency_seconds",
    "API call latency by route template",
    ["route"],
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
    registry=REGISTRY,
)


# ========== Metric Helpers ==========

def track_ingest_time(func: Callable):
    """Decorator to track end-to-end ingest latency."""
    @wraps(func)
    def wrapper(*args, **kwargs):
        start_time = time.time()
        try:
            return func(*args, **kwargs)
        finally:
            ingest_latency_seconds.observe(time.time() - start_time)

    return wrapper


def record_ingest(storage: str, status: str, record_count: int = 0) -> None:
    """Record the outcome of one ingest."""
    ingest_requests_total.labels(storage=storage, status=status).inc()
    if record_count:
        ingested_records_total.labels(storage=storage).inc(record_count)


def record_fallback() -> None:
    storage_fallbacks_total.inc()


def record_retrieval(storage: str, status: str, duration: float) -> None:
    """Record the outcome and latency of one retrieval."""
    retrieval_requests_total.labels(storage=storage, status=status).inc()
    retrieval_latency_seconds.labels(storage=storage).observe(duration)


def record_http_request(method: str, route: str, status_code: int, duration: float) -> None:
    http_requests_total.labels(method=method, route=route, status=str(status_code)).inc()
    http_request_latency_seconds.labels(route=route).observe(duration)


def get_metrics() -> bytes:
    """
    Get current metrics in Prometheus format.

    Returns:
        Metrics as bytes
    """
    return generate_latest(REGISTRY)


def get_metrics_content_type() -> str:
    """Get content type for metrics response."""
    return CONTENT_TYPE_LATEST
