"""Observability module for billing report telemetry."""

from rpm_billing.observability.events import (
    EventType,
    ObservabilityEvent,
    ReportEvent,
    SetupConfirmationEvent,
)
from rpm_billing.observability.logger import ObservabilityLogger, get_observability_logger

__all__ = [
    "EventType",
    "ObservabilityEvent",
    "ObservabilityLogger",
    "ReportEvent",
    "SetupConfirmationEvent",
    "get_observability_logger",
]
