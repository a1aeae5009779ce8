# routes_metrics.py

"""Prometheus metrics and /metrics endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, generate_latest

# Counters
http_requests_total = Counter(
    "http_requests_total", "Total HTTP requests", ["path", "method", "status"]
)
http_errors_total = Counter("http_errors_total", "Total HTTP errors", ["status"])
http_errors_total.labels(status="0").inc(0)

orders_created_total = Counter("orders_created_total", "Total orders created")
orders_created_total.inc(0)

order_modifications_total = Counter(
    "order_modifications_total",
    "Order modification attempts by outcome",
    ["result"],
)
order_modifications_total.labels(result="ok").inc(0)

orders_finalized_total = Counter(
    "orders_finalized_total", "Orders moved to PENDING", ["trigger"]
)
orders_finalized_total.labels(trigger="customer").inc(0)

orders_cancelled_total = Counter(
    "orders_cancelled_total", "Orders cancelled during the grace period"
)
orders_cancelled_total.inc(0)

side_effect_failures_total = Counter(
    "side_effect_failures_total",
    "Broadcast or notification side effects that raised",
    ["effect"],
)
side_effect_failures_total.labels(effect="sample").inc(0)

idempotency_hits_total = Counter(
    "idempotency_hits_total", "Total requests with an idempotency key present"
)
idempotency_hits_total.inc(0)

idempotency_replays_total = Counter(
    "idempotency_replays_total", "Responses served from the idempotency cache"
)
idempotency_replays_total.inc(0)

notifications_outbox_delivered_total = Counter(
    "notifications_outbox_delivered_total",
    "Total notifications delivered from outbox",
)
notifications_outbox_delivered_total.inc(0)

notifications_outbox_failed_total = Counter(
    "notifications_outbox_failed_total",
    "Total notifications that failed from outbox",
)
notifications_outbox_failed_total.inc(0)

db_slow_queries_total = Counter(
    "db_slow_queries_total", "Queries slower than the slow-query threshold"
)
db_slow_queries_total.inc(0)

ws_messages_total = Counter("ws_messages_total", "Total WebSocket messages sent")
ws_messages_total.inc(0)

ws_clients_gauge = Gauge("ws_clients", "Connected realtime WebSocket clients")


router = APIRouter()


@router.get("/metrics")
async def metrics() -> Response:
    """Expose Prometheus metrics."""

    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
