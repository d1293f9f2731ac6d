"""JSON Lines sink for billing report and 99453 confirmation events."""

import json
import logging
import time
import uuid
from collections import Counter
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Iterator, Optional

from rpm_billing.observability.events import (
    EventType,
    ObservabilityEvent,
    ReportEvent,
    SetupConfirmationEvent,
)

logger = logging.getLogger(__name__)

REPORTS = "reports"
SETUP = "setup"

_LOG_FILENAMES = {
    REPORTS: "billing_reports.jsonl",
    SETUP: "setup_confirmations.jsonl",
}


class ObservabilityLogger:
    """Records every report run and setup confirmation as one JSON line.

    Sink failures are logged and swallowed; they never surface to the caller
    or mask an engine error. Callbacks receive each event after it is written.
    """

    _instance: Optional["ObservabilityLogger"] = None

    def __init__(self, log_dir: Optional[Path] = None, enabled: bool = True):
        """Initialize the sink.

        Args:
            log_dir: Directory for the .jsonl files (default: data/logs)
            enabled: When False nothing is written and no directory is created
        """
        self.enabled = enabled
        self.log_dir = Path(log_dir) if log_dir is not None else Path("data/logs")
        if self.enabled:
            self.log_dir.mkdir(parents=True, exist_ok=True)
        self._callbacks: list[Callable[[ObservabilityEvent], None]] = []

    @classmethod
    def get_instance(cls) -> "ObservabilityLogger":
        """Process-wide sink configured from settings."""
        if cls._instance is None:
            from rpm_billing.config import get_settings

            settings = get_settings()
            cls._instance = cls(
                log_dir=settings.observability_log_dir,
                enabled=settings.observability_enabled,
            )
        return cls._instance

    def log_path(self, log_type: str) -> Path:
        return self.log_dir / _LOG_FILENAMES[log_type]

    def add_callback(self, callback: Callable[[ObservabilityEvent], None]) -> None:
        self._callbacks.append(callback)

    def _write_event(self, event: ObservabilityEvent, log_type: str) -> None:
        if not self.enabled:
            return

        try:
            with self.log_path(log_type).open("a") as f:
                f.write(event.model_dump_json() + "\n")
        except OSError as e:
            logger.warning("Could not write %s event: %s", log_type, e)

        for callback in self._callbacks:
            try:
                callback(event)
            except Exception as e:
                logger.warning("Observability callback %r failed: %s", callback, e)

    # Report runs

    @contextmanager
    def report_run(
        self,
        scope: str,
        clinic_id: Optional[str] = None,
        enrollment_id: Optional[str] = None,
        period_from: Optional[str] = None,
        period_to: Optional[str] = None,
        request_id: Optional[str] = None,
    ) -> Iterator[ReportEvent]:
        """Time a report and record its outcome.

        Usage:
            with obs.report_run("clinic", clinic_id=clinic_id) as event:
                report = await assembler.clinic_report(clinic_id, period)
                event.patient_count = report.summary.total_patients
        """
        event = ReportEvent(
            event_type=EventType.REPORT_START,
            scope=scope,
            clinic_id=clinic_id,
            enrollment_id=enrollment_id,
            period_from=period_from,
            period_to=period_to,
            request_id=request_id or uuid.uuid4().hex[:8],
        )
        started = time.perf_counter()

        try:
            yield event
        except Exception as e:
            event.event_type = EventType.REPORT_ERROR
            event.error_type = type(e).__name__
            event.error_message = str(e)[:200]
            raise
        else:
            event.event_type = EventType.REPORT_SUCCESS
        finally:
            event.duration_ms = (time.perf_counter() - started) * 1000
            self._write_event(event, REPORTS)

    # Setup confirmations

    def log_setup_confirmation(
        self,
        enrollment_id: str,
        billed_at: Optional[datetime],
        was_already_billed: bool,
        confirmed_by: Optional[str] = None,
        request_id: Optional[str] = None,
    ) -> None:
        self._write_event(
            SetupConfirmationEvent(
                enrollment_id=enrollment_id,
                billed_at=billed_at,
                was_already_billed=was_already_billed,
                confirmed_by=confirmed_by,
                request_id=request_id,
            ),
            SETUP,
        )

    # Reading back

    def get_recent_events(
        self,
        log_type: str,
        limit: int = 100,
        clinic_id: Optional[str] = None,
    ) -> list[dict[str, Any]]:
        """Last ``limit`` events of a type, optionally for one clinic.

        Malformed lines are skipped.
        """
        path = self.log_path(log_type)
        if not path.exists():
            return []

        events = []
        with path.open() as f:
            for line in f:
                try:
                    event = json.loads(line)
                except json.JSONDecodeError:
                    continue
                if clinic_id is None or event.get("clinic_id") == clinic_id:
                    events.append(event)

        return events[-limit:]

    def report_stats(self, clinic_id: Optional[str] = None) -> dict[str, Any]:
        """Run counts, error rate and timing over recent report events."""
        events = self.get_recent_events(REPORTS, limit=1000, clinic_id=clinic_id)
        if not events:
            return {"total": 0}

        total = len(events)
        errors = sum(1 for e in events if e.get("event_type") == EventType.REPORT_ERROR.value)
        return {
            "total": total,
            "by_scope": dict(Counter(e.get("scope") for e in events)),
            "errors": errors,
            "error_rate": errors / total,
            "avg_duration_ms": sum(e.get("duration_ms") or 0 for e in events) / total,
            "patients_evaluated": sum(e.get("patient_count", 0) for e in events),
        }


def get_observability_logger() -> ObservabilityLogger:
    """Get the global observability logger instance."""
    return ObservabilityLogger.get_instance()
