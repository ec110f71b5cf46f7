"""Metric definitions used across the application."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple


@dataclass(frozen=True)
class MetricDefinition:
    """Describe a metric that should exist in the registry."""

    name: str
    metric_type: str
    description: str
    label_names: Tuple[str, ...] = ()


TICKETS_CREATED = "tickets_created_total"
TICKET_CLAIMS = "ticket_claims_total"
TICKET_TRANSITIONS = "ticket_transitions_total"
TICKET_OPERATION_DURATION = "ticket_operation_duration_seconds"
TICKET_OPERATION_FAILURES = "ticket_operation_failures_total"


DEFAULT_METRIC_DEFINITIONS: Tuple[MetricDefinition, ...] = (
    MetricDefinition(
        name=TICKETS_CREATED,
        metric_type="counter",
        description="Number of tickets filed.",
    ),
    MetricDefinition(
        name=TICKET_CLAIMS,
        metric_type="counter",
        description="Claim attempts by outcome (claimed, already_claimed).",
        label_names=("outcome",),
    ),
    MetricDefinition(
        name=TICKET_TRANSITIONS,
        metric_type="counter",
        description="Accepted terminal transitions by target status.",
        label_names=("status",),
    ),
    MetricDefinition(
        name=TICKET_OPERATION_DURATION,
        metric_type="distribution",
        description="Duration of guarded ticket operations in seconds.",
        label_names=("operation",),
    ),
    MetricDefinition(
        name=TICKET_OPERATION_FAILURES,
        metric_type="counter",
        description="Ticket operations that ended with an error, by error type.",
        label_names=("operation", "error"),
    ),
)
