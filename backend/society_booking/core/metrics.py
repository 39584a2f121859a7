"""
Prometheus instrumentation for the booking core.
Exposed at the /metrics endpoint.
"""

from fastapi import Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest

# Admission outcomes
reservation_attempts = Counter(
    "reservation_attempts_total",
    "Reservation submissions by outcome",
    ["outcome"],  # admitted, slot_taken, invalid, storage_failure
)

admission_latency = Histogram(
    "reservation_admission_latency_seconds",
    "Time spent inside the admission transaction",
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5],
)

# Admission gate
gate_decisions = Counter(
    "admission_gate_decisions_total",
    "Admission gate decisions",
    ["strategy", "result"],  # admitted, timeout, fail_open
)

# Ledger
ledger_retries = Counter(
    "ledger_day_retries_total",
    "Admission retries caused by a concurrent commit on the same resource day",
)

lifecycle_transitions = Counter(
    "reservation_transitions_total",
    "Lifecycle transitions by action and result",
    ["action", "result"],  # applied, invalid, denied, not_found
)

# Cache
cache_operations = Counter(
    "cache_operations_total",
    "Cache operations",
    ["operation", "result"],  # get/set, hit/miss
)

redis_connection_errors = Counter(
    "redis_connection_errors_total",
    "Redis connection errors",
)

redis_circuit_breaker_open = Gauge(
    "redis_circuit_breaker_open",
    "Redis admission gate failing open (1=open, 0=closed)",
)


def metrics_endpoint() -> Response:
    """Render all registered collectors in the Prometheus text format."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


def record_reservation_attempt(outcome: str):
    reservation_attempts.labels(outcome=outcome).inc()


def record_gate_decision(strategy: str, result: str):
    gate_decisions.labels(strategy=strategy, result=result).inc()


def record_transition(action: str, result: str):
    lifecycle_transitions.labels(action=action, result=result).inc()


def record_cache_operation(operation: str, hit: bool):
    result = "hit" if hit else "miss"
    cache_operations.labels(operation=operation, result=result).inc()
