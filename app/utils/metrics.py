"""
Prometheus-based metrics for production monitoring.
Provides /metrics endpoint for scraping.
"""
from prometheus_client import Counter, Histogram, Gauge, generate_latest, CONTENT_TYPE_LATEST
from fastapi import APIRouter, Response


# Counters
poster_generations_total = Counter(
    "poster_generations_total",
    "Poster render requests by resulting poster status",
    ["status"],
)

placid_callbacks_total = Counter(
    "placid_callbacks_total",
    "Placid generation callbacks by outcome",
    ["outcome"],  # updated, upserted, idempotent, unlinked, persist_failed
)

payment_initiations_total = Counter(
    "payment_initiations_total",
    "STK push initiations",
    ["status"],
)

payment_callbacks_total = Counter(
    "payment_callbacks_total",
    "Payment provider callbacks by outcome",
    ["provider", "outcome"],
)

persistence_retries_total = Counter(
    "persistence_retries_total",
    "Write-and-verify attempts that did not persist",
    ["operation"],
)

gateway_requests_total = Counter(
    "gateway_requests_total",
    "Outbound provider requests",
    ["provider", "operation", "status"],
)

notifications_dispatched_total = Counter(
    "notifications_dispatched_total",
    "Notification deliveries processed",
    ["channel", "status"],
)

circuit_breaker_state = Gauge(
    "circuit_breaker_state",
    "Circuit breaker state (0=closed, 1=open)",
    ["name"],
)

# Histograms
gateway_request_duration_seconds = Histogram(
    "gateway_request_duration_seconds",
    "Outbound provider request duration",
    ["provider", "operation"],
    buckets=[0.1, 0.5, 1, 2, 5, 10, 30],
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
