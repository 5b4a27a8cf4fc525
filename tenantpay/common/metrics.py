"""Prometheus metric definitions for tracker sessions and backend polling."""

from prometheus_client import Counter, Gauge, Histogram, generate_latest
from starlette.responses import Response


tracker_polls_total = Counter("tracker_polls_total", "Invoice status polls issued", ["service"])
tracker_poll_failures_total = Counter(
    "tracker_poll_failures_total",
    "Invoice status polls that failed and were skipped",
    ["service", "reason"],
)
tracker_poll_latency_seconds = Histogram(
    "tracker_poll_latency_seconds",
    "Invoice status poll round-trip seconds",
    ["service"],
)
tracker_stale_responses_total = Counter(
    "tracker_stale_responses_total",
    "Poll responses discarded because a newer response was already delivered",
    ["service"],
)
tracker_transitions_total = Counter(
    "tracker_transitions_total",
    "Confirmation state machine transitions",
    ["service", "from_state", "to_state"],
)
tracker_sessions_active = Gauge(
    "tracker_sessions_active",
    "Currently open tracker sessions",
    ["service"],
)
payment_confirmed_total = Counter(
    "payment_confirmed_total",
    "Tracker sessions that observed a PAID invoice",
    ["service"],
)
payment_partial_total = Counter(
    "payment_partial_total",
    "Tracker sessions that detected an amount mismatch",
    ["service"],
)
tracker_session_seconds = Histogram(
    "tracker_session_seconds",
    "Tracker session duration from open to terminal state or close",
    ["service", "final_state"],
    buckets=(30, 60, 120, 300, 600, 1200, 1800, 3600, 7200),
)


def metrics_response() -> Response:
    """Expose all registered Prometheus metrics in text format."""

    return Response(content=generate_latest(), media_type="text/plain")
