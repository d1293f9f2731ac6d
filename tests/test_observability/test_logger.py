"""Tests for observability logger."""

import json
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from rpm_billing.observability import (
    EventType,
    ObservabilityLogger,
    ReportEvent,
    SetupConfirmationEvent,
    get_observability_logger,
)


@pytest.fixture
def temp_log_dir(tmp_path):
    """Create temporary log directory."""
    log_dir = tmp_path / "logs"
    log_dir.mkdir()
    return log_dir


@pytest.fixture
def obs_logger(temp_log_dir):
    """Create observability logger with temp directory."""
    return ObservabilityLogger(log_dir=temp_log_dir, enabled=True)


def _read(path):
    return [json.loads(line) for line in path.read_text().strip().split("\n")]


class TestObservabilityLogger:
    """Tests for ObservabilityLogger."""

    def test_init_creates_log_directory(self, tmp_path):
        """Test that init creates log directory if needed."""
        log_dir = tmp_path / "new_logs"
        ObservabilityLogger(log_dir=log_dir)

        assert log_dir.exists()

    def test_disabled_logger_writes_nothing(self, tmp_path):
        """Test that disabled logger doesn't write or create directories."""
        log_dir = tmp_path / "disabled"
        logger = ObservabilityLogger(log_dir=log_dir, enabled=False)

        with logger.report_run("clinic", clinic_id="clinic-1") as event:
            event.patient_count = 3

        assert not log_dir.exists()

    def test_report_run_success(self, obs_logger, temp_log_dir):
        """Test logging a successful clinic report."""
        with obs_logger.report_run(
            "clinic",
            clinic_id="clinic-1",
            period_from="2026-03-01",
            period_to="2026-03-31",
        ) as event:
            event.patient_count = 12
            event.eligible_code_count = 31

        events = _read(temp_log_dir / "billing_reports.jsonl")
        assert len(events) == 1
        assert events[0]["event_type"] == "report_success"
        assert events[0]["scope"] == "clinic"
        assert events[0]["clinic_id"] == "clinic-1"
        assert events[0]["period_from"] == "2026-03-01"
        assert events[0]["patient_count"] == 12
        assert events[0]["duration_ms"] is not None
        assert events[0]["request_id"]

    def test_report_run_error(self, obs_logger, temp_log_dir):
        """Test logging a failed report."""
        with pytest.raises(RuntimeError):
            with obs_logger.report_run("patient", enrollment_id="enr-1"):
                raise RuntimeError("database unavailable")

        events = _read(temp_log_dir / "billing_reports.jsonl")
        assert len(events) == 1
        assert events[0]["event_type"] == "report_error"
        assert events[0]["error_type"] == "RuntimeError"
        assert "database unavailable" in events[0]["error_message"]

    def test_setup_confirmation(self, obs_logger, temp_log_dir):
        """Test logging a 99453 confirmation."""
        billed_at = datetime(2026, 3, 31, 18, 0, tzinfo=timezone.utc)
        obs_logger.log_setup_confirmation(
            enrollment_id="enr-1",
            billed_at=billed_at,
            was_already_billed=False,
            confirmed_by="clinician-1",
        )

        events = _read(temp_log_dir / "setup_confirmations.jsonl")
        assert events[0]["event_type"] == "setup_confirmed"
        assert events[0]["enrollment_id"] == "enr-1"
        assert events[0]["confirmed_by"] == "clinician-1"
        assert events[0]["was_already_billed"] is False

    def test_callback_receives_events(self, obs_logger):
        """Test that callbacks see every written event."""
        callback = MagicMock()
        obs_logger.add_callback(callback)

        with obs_logger.report_run("clinic", clinic_id="clinic-1"):
            pass

        callback.assert_called_once()
        event = callback.call_args[0][0]
        assert isinstance(event, ReportEvent)
        assert event.event_type == EventType.REPORT_SUCCESS

    def test_failing_callback_does_not_break_logging(self, obs_logger, temp_log_dir):
        """Test that a broken callback is isolated."""
        obs_logger.add_callback(MagicMock(side_effect=ValueError("boom")))

        obs_logger.log_setup_confirmation("enr-1", None, was_already_billed=True)

        assert len(_read(temp_log_dir / "setup_confirmations.jsonl")) == 1

    def test_get_recent_events_limit(self, obs_logger):
        """Test reading back a bounded number of events."""
        for i in range(5):
            with obs_logger.report_run("patient", enrollment_id=f"enr-{i}"):
                pass

        events = obs_logger.get_recent_events("reports", limit=2)
        assert [e["enrollment_id"] for e in events] == ["enr-3", "enr-4"]

    def test_get_recent_events_missing_file(self, obs_logger):
        assert obs_logger.get_recent_events("setup") == []

    def test_report_stats(self, obs_logger):
        """Test success and error counts."""
        with obs_logger.report_run("clinic", clinic_id="clinic-1") as event:
            event.patient_count = 4
        with obs_logger.report_run("patient", clinic_id="clinic-1") as event:
            event.patient_count = 1
        with pytest.raises(ValueError):
            with obs_logger.report_run("clinic", clinic_id="clinic-2"):
                raise ValueError("bad period")

        stats = obs_logger.report_stats()
        assert stats["total"] == 3
        assert stats["by_scope"] == {"clinic": 2, "patient": 1}
        assert stats["errors"] == 1
        assert stats["patients_evaluated"] == 5

    def test_report_stats_for_clinic(self, obs_logger):
        with obs_logger.report_run("clinic", clinic_id="clinic-1"):
            pass
        with obs_logger.report_run("clinic", clinic_id="clinic-2"):
            pass

        assert obs_logger.report_stats(clinic_id="clinic-2")["total"] == 1

    def test_report_stats_empty(self, obs_logger):
        assert obs_logger.report_stats() == {"total": 0}

    def test_malformed_lines_skipped(self, obs_logger, temp_log_dir):
        with obs_logger.report_run("clinic"):
            pass
        with (temp_log_dir / "billing_reports.jsonl").open("a") as f:
            f.write("{truncated\n")

        assert len(obs_logger.get_recent_events("reports")) == 1


class TestEvents:
    def test_setup_event_default_type(self):
        event = SetupConfirmationEvent(enrollment_id="enr-1")
        assert event.event_type == EventType.SETUP_CONFIRMED

    def test_report_event_defaults(self):
        event = ReportEvent(event_type=EventType.REPORT_START, scope="clinic")
        assert event.patient_count == 0
        assert event.error_type is None


class TestGlobalLogger:
    def test_singleton(self, monkeypatch, tmp_path):
        monkeypatch.setattr(ObservabilityLogger, "_instance", None)
        monkeypatch.setenv("RPM_BILLING_OBSERVABILITY_LOG_DIR", str(tmp_path / "global"))

        from rpm_billing.config import get_settings

        get_settings.cache_clear()
        try:
            first = get_observability_logger()
            second = get_observability_logger()
        finally:
            get_settings.cache_clear()

        assert first is second
        assert first.log_dir == tmp_path / "global"
