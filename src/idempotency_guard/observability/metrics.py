"""Prometheus metrics for idempotency handling.

Metrics include:

- Decision counter by result (pass_through, miss, hit, conflict, misuse)
- Persistence outcome counter (persisted, discarded, failed)
- Pending resources gauge for keys claimed by this process
- Cleanup operation tracking

Examples:
    Recording a decision::

        from idempotency_guard.observability.metrics import record_decision

        record_decision("hit")

    Recording cleanup operations::

        from idempotency_guard.observability.metrics import record_cleanup

        record_cleanup(records_removed=42)
"""

from prometheus_client import Counter, Gauge

DECISION_RESULTS = ("pass_through", "miss", "hit", "conflict", "misuse")
PERSISTENCE_OUTCOMES = ("persisted", "discarded", "failed")

# Labels: result (see DECISION_RESULTS)
decisions_total = Counter(
    "idempotency_decisions_total",
    "Total number of requests classified by the idempotency service",
    ["result"],
)

# Labels: outcome (see PERSISTENCE_OUTCOMES)
persistence_total = Counter(
    "idempotency_persistence_total",
    "Outcome of captured responses for pending idempotency resources",
    ["outcome"],
)

pending_resources = Gauge(
    "idempotency_pending_resources",
    "Number of idempotency resources claimed by this process and still pending",
)

cleanup_operations = Counter(
    "idempotency_cleanup_operations_total",
    "Total number of cleanup operations performed",
)

cleanup_records_removed = Counter(
    "idempotency_cleanup_records_removed_total",
    "Total number of expired resources removed by cleanup",
)


def record_decision(result: str) -> None:
    """Record how a request was classified.

    Args:
        result: One of DECISION_RESULTS

    Raises:
        ValueError: If result is unknown

    Examples:
        >>> record_decision("conflict")
    """
    if result not in DECISION_RESULTS:
        raise ValueError(f"Unknown decision result: {result}")
    decisions_total.labels(result=result).inc()


def record_persistence(outcome: str) -> None:
    """Record what happened to a captured response.

    Args:
        outcome: One of PERSISTENCE_OUTCOMES
    """
    if outcome not in PERSISTENCE_OUTCOMES:
        raise ValueError(f"Unknown persistence outcome: {outcome}")
    persistence_total.labels(outcome=outcome).inc()


def increment_pending() -> None:
    """Called when this process claims a key."""
    pending_resources.inc()


def decrement_pending() -> None:
    """Called when a claimed key is completed or released."""
    pending_resources.dec()


def record_cleanup(records_removed: int) -> None:
    """Record a cleanup operation.

    Args:
        records_removed: Number of expired resources removed

    Examples:
        >>> record_cleanup(42)
    """
    cleanup_operations.inc()
    cleanup_records_removed.inc(records_removed)
