"""Prometheus metrics for the MediRate API."""
from prometheus_client import Counter, Histogram

REQUEST_DURATION = Histogram(
    "medirate_request_duration_seconds",
    "HTTP request latency in seconds",
    ["method", "route"],
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)
ACCESS_DECISIONS = Counter(
    "medirate_access_decisions_total",
    "Entitlement decisions by outcome",
    ["outcome"],
)
EXPORT_ROWS_RESERVED = Counter(
    "medirate_export_rows_reserved_total",
    "Excel export rows reserved",
)
EXPORT_RESERVATIONS_REFUSED = Counter(
    "medirate_export_reservations_refused_total",
    "Excel export reservations refused for lack of remaining rows",
)
WEBHOOK_EVENTS = Counter(
    "medirate_stripe_webhook_events_total",
    "Stripe webhook events processed",
    ["event_type", "status"],
)
EMAILS_SENT = Counter(
    "medirate_emails_total",
    "Transactional emails by category and outcome",
    ["category", "status"],
)
