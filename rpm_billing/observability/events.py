"""Structured observability events for billing report telemetry."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class EventType(str, Enum):
    """Types of observability events."""

    REPORT_START = "report_start"
    REPORT_SUCCESS = "report_success"
    REPORT_ERROR = "report_error"
    SETUP_CONFIRMED = "setup_confirmed"


class ObservabilityEvent(BaseModel):
    """Base class for all observability events."""

    event_type: EventType
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    request_id: Optional[str] = None
    duration_ms: Optional[float] = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class ReportEvent(ObservabilityEvent):
    """Event for a clinic or patient billing report run."""

    scope: str  # clinic | patient
    clinic_id: Optional[str] = None
    enrollment_id: Optional[str] = None
    period_from: Optional[str] = None
    period_to: Optional[str] = None

    # Populated on success
    patient_count: int = 0
    eligible_code_count: int = 0

    # Populated on error
    error_type: Optional[str] = None
    error_message: Optional[str] = None


class SetupConfirmationEvent(ObservabilityEvent):
    """Event for an explicit 99453 billed confirmation."""

    event_type: EventType = EventType.SETUP_CONFIRMED
    enrollment_id: str
    confirmed_by: Optional[str] = None
    billed_at: Optional[datetime] = None
    was_already_billed: bool = False
