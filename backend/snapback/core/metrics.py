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

DECISIONS = Counter(
    "snapback_decisions_total",
    "Protection decisions made, by outcome",
    labelnames=("outcome",),
    registry=REGISTRY,
)

SNAPSHOTS_CREATED = Counter(
    "snapback_snapshots_total",
    "Snapshots admitted to the catalog, by trigger",
    labelnames=("trigger",),
    registry=REGISTRY,
)

EVICTIONS = Counter(
    "snapback_evictions_total",
    "Snapshots evicted to satisfy storage limits",
    registry=REGISTRY,
)

RATE_LIMITED = Counter(
    "snapback_rate_limited_total",
    "Snapshot attempts rejected by the rate limiter",
    registry=REGISTRY,
)

CATALOG_SIZE = Gauge(
    "snapback_catalog_snapshots",
    "Number of snapshots currently in the catalog",
    registry=REGISTRY,
)

OPERATION_DURATION = Histogram(
    "snapback_operation_duration_seconds",
    "Duration of coordinated operations",
    labelnames=("name", "status"),
    registry=REGISTRY,
)


def metrics_response() -> Response:
    """Return Prometheus metrics as an HTTP response."""
    payload = generate_latest(REGISTRY)
    return Response(content=payload, media_type=CONTENT_TYPE_LATEST)


__all__ = [
    "REGISTRY",
    "DECISIONS",
    "SNAPSHOTS_CREATED",
    "EVICTIONS",
    "RATE_LIMITED",
    "CATALOG_SIZE",
    "OPERATION_DURATION",
    "metrics_response",
]
