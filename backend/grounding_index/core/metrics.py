"""Prometheus metrics instrumentation."""

from __future__ import annotations

from fastapi import Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

REGISTRY = CollectorRegistry()

REQUEST_COUNT = Counter(
    "gidx_requests_total",
    "Total HTTP requests",
    labelnames=("endpoint", "method", "status"),
    registry=REGISTRY,
)

PROCESSING_ATTEMPTS = Counter(
    "gidx_processing_attempts_total",
    "Material processing attempts by outcome",
    labelnames=("status",),
    registry=REGISTRY,
)

PROCESSING_DURATION = Histogram(
    "gidx_processing_duration_seconds",
    "Wall-clock duration of one processing attempt",
    registry=REGISTRY,
)

RETRIEVAL_LATENCY = Histogram(
    "gidx_retrieval_latency_seconds",
    "Latency of similarity queries",
    labelnames=("kind",),
    registry=REGISTRY,
)

INDEX_SIZE = Gauge(
    "gidx_index_rows",
    "Number of vector rows stored per collection",
    labelnames=("collection",),
    registry=REGISTRY,
)


def metrics_response() -> Response:
    """Return Prometheus metrics as an HTTP response."""
    payload = generate_latest(REGISTRY)
    return Response(content=payload, media_type=CONTENT_TYPE_LATEST)


__all__ = [
    "REGISTRY",
    "REQUEST_COUNT",
    "PROCESSING_ATTEMPTS",
    "PROCESSING_DURATION",
    "RETRIEVAL_LATENCY",
    "INDEX_SIZE",
    "metrics_response",
]
