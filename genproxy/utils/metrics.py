"""
Prometheus-based metrics for production monitoring.
Provides /metrics endpoint for scraping.
"""
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import APIRouter, Response


# Counters
generation_requests_total = Counter(
    "generation_requests_total",
    "Total billed generation requests",
    ["backend", "outcome"],  # outcome: success or a failure type
)

credit_operations_total = Counter(
    "credit_operations_total",
    "Total credit ledger operations",
    ["operation"],  # RESERVE, REFUND, REFUND_FAILED
)

credit_rejected_total = Counter(
    "credit_rejected_total",
    "Total requests rejected for insufficient credit",
)

# Histograms
generation_duration_seconds = Histogram(
    "generation_duration_seconds",
    "Upstream generation duration",
    ["backend"],
    buckets=[1, 5, 10, 30, 60, 120, 180],
)

async_poll_attempts = Histogram(
    "async_poll_attempts",
    "Poll attempts per async task until terminal status or timeout",
    buckets=[1, 2, 5, 10, 20, 30, 45, 60],
)


# Metrics endpoint router
router = APIRouter()


@router.get("/metrics")
def metrics_endpoint() -> Response:
    """Prometheus metrics endpoint for scraping."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )
