"""
Prometheus metrics for the movie catalog cache.

Tracks cache decisions, catalog calls, degraded serves and refresh cycles.
"""

from fastapi import Response
from prometheus_client import (CONTENT_TYPE_LATEST, Counter, Histogram,
                               generate_latest)

# Request metrics
http_requests_total = Counter(
    "catalog_http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"],
)

http_request_duration_seconds = Histogram(
    "catalog_http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

# Cache metrics
catalog_cache_hits_total = Counter(
    "catalog_cache_hits_total", "Reads served from a fresh cache entry", ["query_type"]
)

catalog_cache_misses_total = Counter(
    "catalog_cache_misses_total", "Reads that needed a refresh", ["query_type"]
)

catalog_stale_serves_total = Counter(
    "catalog_stale_serves_total",
    "Cached results served after a failed refresh",
    ["query_type", "error_type"],
)

# Remote catalog metrics
catalog_remote_fetches_total = Counter(
    "catalog_remote_fetches_total",
    "Calls to the remote catalog",
    ["operation", "outcome"],
)

catalog_referential_retries_total = Counter(
    "catalog_referential_retries_total",
    "Movie writes retried after a genre refresh",
    ["outcome"],
)

catalog_refresh_duration_seconds = Histogram(
    "catalog_refresh_duration_seconds",
    "Duration of a complete refresh cycle in seconds",
    ["query_type"],
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0),
)


def track_request_metrics(
    method: str, endpoint: str, status_code: int, duration: float
):
    """Track HTTP request metrics."""
    http_requests_total.labels(
        method=method, endpoint=endpoint, status=status_code
    ).inc()
    http_request_duration_seconds.labels(method=method, endpoint=endpoint).observe(
        duration
    )


def track_remote_fetch(operation: str, outcome: str):
    """Track one catalog call; outcome is success, error, not_found or malformed."""
    catalog_remote_fetches_total.labels(operation=operation, outcome=outcome).inc()


async def metrics_endpoint():
    """
    Prometheus metrics endpoint.

    Returns:
        Response with Prometheus metrics in text format
    """
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
