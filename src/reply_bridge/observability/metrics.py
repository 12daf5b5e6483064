"""Prometheus metrics for the reply bridge.

This module provides Prometheus metrics to monitor the tracking and
delivery subsystem:

- Admission counter by result (admitted, duplicate, send_failed, untracked)
- Active tracking records gauge
- Inbound event counter by outcome (self, rejected, unmatched, correlated)
- Webhook attempt and delivery counters
- Sweep operation tracking

Examples:
    >>> record_admission("duplicate")
    >>> record_delivery("delivered")
    >>> record_sweep(records_removed=42)
"""

from prometheus_client import Counter, Gauge

# Labels: result (admitted, duplicate, send_failed, untracked)
admissions_total = Counter(
    "bridge_admissions_total",
    "Total number of transactions submitted to the dedup gate",
    ["result"],
)

active_records = Gauge(
    "bridge_active_records",
    "Number of unexpired tracking records at the last count",
)

# Labels: outcome (self, rejected, unmatched, correlated, lookup_failed)
inbound_events_total = Counter(
    "bridge_inbound_events_total",
    "Total number of inbound chat events seen by the correlator",
    ["outcome"],
)

delivery_attempts_total = Counter(
    "bridge_delivery_attempts_total",
    "Total number of webhook HTTP attempts, including retries",
    ["result"],
)

deliveries_total = Counter(
    "bridge_deliveries_total",
    "Total number of webhook deliveries by final result",
    ["result"],
)

sweep_operations = Counter(
    "bridge_sweep_operations_total",
    "Total number of expired-record sweeps performed",
)

sweep_records_removed = Counter(
    "bridge_sweep_records_removed_total",
    "Total number of expired tracking records removed by sweeps",
)


def record_admission(result: str) -> None:
    """Record the result of one admit call."""
    admissions_total.labels(result=result).inc()


def set_active_records(count: int) -> None:
    """Publish the current number of active tracking records."""
    active_records.set(count)


def record_inbound(outcome: str) -> None:
    """Record how the correlator handled one inbound event."""
    inbound_events_total.labels(outcome=outcome).inc()


def record_delivery_attempt(success: bool) -> None:
    """Record a single webhook HTTP attempt."""
    delivery_attempts_total.labels(result="success" if success else "failure").inc()


def record_delivery(result: str) -> None:
    """Record the final result of a delivery (delivered, failed)."""
    deliveries_total.labels(result=result).inc()


def record_sweep(records_removed: int) -> None:
    """Record a sweep operation.

    Args:
        records_removed: Number of expired records removed
    """
    sweep_operations.inc()
    sweep_records_removed.inc(records_removed)
