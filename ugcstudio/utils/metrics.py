"""
Prometheus-based metrics for production monitoring.
Provides /metrics endpoint for scraping.
"""
from prometheus_client import Counter, Histogram, Gauge, generate_latest, CONTENT_TYPE_LATEST
from fastapi import APIRouter, Response


# Counters
webhook_events_total = Counter(
    "webhook_events_total",
    "Inbound payment events by outcome",
    ["event_type", "outcome"],  # reconciled, unreconciled, refunded, idempotent, ignored, failed, rejected
)

ledger_entries_total = Counter(
    "ledger_entries_total",
    "Credit ledger entries appended",
    ["source_kind"],
)

balance_rejected_total = Counter(
    "balance_rejected_total",
    "Total balance rejections",
)

batches_total = Counter(
    "batches_total",
    "Batch create requests by outcome",
    ["outcome"],  # created, replayed, insufficient_credits, duplicate_in_flight
)

video_requests_created_total = Counter(
    "video_requests_created_total",
    "Video requests created",
)

dispatch_requests_total = Counter(
    "dispatch_requests_total",
    "Outbound automation dispatch attempts",
    ["status"],  # success, error, skipped
)

circuit_breaker_state = Gauge(
    "circuit_breaker_state",
    "Circuit breaker state (0=closed, 1=open)",
    ["name"],
)

# Histograms
dispatch_request_duration_seconds = Histogram(
    "dispatch_request_duration_seconds",
    "Automation dispatch request duration",
    buckets=[0.1, 0.5, 1, 2, 5, 10],
)

webhook_processing_seconds = Histogram(
    "webhook_processing_seconds",
    "Inbound payment event processing duration",
    buckets=[0.01, 0.05, 0.1, 0.5, 1, 5],
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
