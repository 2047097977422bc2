"""
Prometheus metrics middleware.

Collects HTTP request metrics (counter + histogram) and exposes application-level
counters for detection, embedding calls, permit uploads and compliance checks.
"""

import time

from prometheus_client import Counter, Histogram
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

# ── HTTP metrics ─────────────────────────────────────────────────────────────

http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status_code"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)

# ── Detection metrics ────────────────────────────────────────────────────────

detection_items_total = Counter(
    "detection_items_total",
    "Product items run through the detection engine",
    ["determination"],
)

detection_layer_failures_total = Counter(
    "detection_layer_failures_total",
    "Detection layer evaluations that raised",
    ["layer"],
)

embedding_requests_total = Counter(
    "embedding_requests_total",
    "Calls to the embedding provider",
    ["status"],
)

embedding_duration_seconds = Histogram(
    "embedding_duration_seconds",
    "Embedding provider latency in seconds (including retries)",
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)

# ── Permit / compliance metrics ──────────────────────────────────────────────

permit_uploads_total = Counter(
    "permit_uploads_total",
    "Permit uploads by type and validation outcome",
    ["permit_type", "valid"],
)

compliance_checks_total = Counter(
    "compliance_checks_total",
    "Compliance gate evaluations by result",
    ["result"],
)


def _normalize_path(path: str) -> str:
    """Collapse path parameters to reduce cardinality.

    e.g. /api/compliance/SHP-2025-0001 → /api/compliance/{id}
    """
    parts = path.strip("/").split("/")
    normalized = []
    for i, part in enumerate(parts):
        if i > 1 and (
            part.startswith("SHP-")
            or part.startswith("REV-")
            or part.isdigit()
            or len(part) > 20
        ):
            normalized.append("{id}")
        else:
            normalized.append(part)
    return "/" + "/".join(normalized)


class PrometheusMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        # Skip metrics endpoint itself to avoid recursion
        if request.url.path == "/metrics":
            return await call_next(request)

        method = request.method
        path = _normalize_path(request.url.path)

        start = time.time()
        response = await call_next(request)
        duration = time.time() - start

        http_requests_total.labels(
            method=method,
            path=path,
            status_code=response.status_code,
        ).inc()

        http_request_duration_seconds.labels(
            method=method,
            path=path,
        ).observe(duration)

        return response
