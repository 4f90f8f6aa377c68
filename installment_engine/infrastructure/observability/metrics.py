"""Prometheus metrics for negotiation outcomes, contract health and notification delivery"""

from prometheus_client import Counter, Histogram

# Negotiation metrics
request_created_counter = Counter(
    "installment_requests_created_total",
    "Installment requests opened by buyers",
)

primary_decision_counter = Counter(
    "installment_primary_decisions_total",
    "Primary seller review decisions",
    ["decision"],  # approved_full | approved_partial | rejected
)

offer_submitted_counter = Counter(
    "installment_offers_submitted_total",
    "Offers created for buyers",
    ["source"],  # primary_seller | supplier
)

buyer_decision_counter = Counter(
    "installment_buyer_decisions_total",
    "Buyer responses to offers",
    ["action", "source"],
)

# Contract health
installment_paid_counter = Counter(
    "installments_paid_total",
    "Installments marked paid",
)

installment_overdue_counter = Counter(
    "installments_overdue_total",
    "Installments marked overdue by the sweeper",
)

sweep_duration_histogram = Histogram(
    "delinquency_sweep_duration_seconds",
    "Duration of one delinquency sweep",
    buckets=[0.1, 0.5, 1.0, 5.0, 15.0, 60.0],
)

# Notification metrics
notification_latency_histogram = Histogram(
    "notification_latency_seconds",
    "Notification webhook response time",
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

notification_failure_counter = Counter(
    "notification_failures_total",
    "Failed notification deliveries",
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_buyer_decision(action: str, source: str) -> None:
    """Record buyer accept/reject split by offer source for conversion analysis"""
    buyer_decision_counter.labels(action=action, source=source).inc()
