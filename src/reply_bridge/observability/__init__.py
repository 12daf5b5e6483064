"""Observability utilities for the reply bridge.

This package provides monitoring and debugging capabilities:
- Prometheus metrics for admissions, deliveries and sweeps
- Structured logging with transaction context
"""

from reply_bridge.observability.logging import configure_logging, get_logger
from reply_bridge.observability.metrics import (
    record_admission,
    record_delivery,
    record_delivery_attempt,
    record_inbound,
    record_sweep,
    set_active_records,
)

__all__ = [
    "configure_logging",
    "get_logger",
    "record_admission",
    "record_delivery",
    "record_delivery_attempt",
    "record_inbound",
    "record_sweep",
    "set_active_records",
]
