"""Pytest configuration and fixtures."""

from datetime import date, datetime, timedelta, timezone

import pytest

from rpm_billing.billing.engine import BillingReportAssembler
from rpm_billing.billing.repositories import (
    BillingSnapshot,
    ClinicRecord,
    InMemoryBillingStore,
    InMemorySetupStateRepository,
    MembershipRecord,
)
from rpm_billing.models.billing import (
    BillingPeriod,
    BillingProgram,
    Enrollment,
    EnrollmentStatus,
    MembershipRole,
    PerformerType,
    TimeEntry,
    TimeEntryActivity,
)

CLINIC_ID = "clinic-1"
OWNER_ID = "clinician-owner"
STAFF_ID = "clinician-staff"


@pytest.fixture
def march_2026():
    return BillingPeriod.for_month(2026, 3)


@pytest.fixture
def make_entry():
    """Factory for time entries inside March 2026."""

    def _make(
        minutes: int,
        activity: TimeEntryActivity = TimeEntryActivity.PATIENT_REVIEW,
        performer: PerformerType = PerformerType.CLINICAL_STAFF,
        patient_id: str = "patient-1",
        entry_date: date = date(2026, 3, 10),
    ) -> TimeEntry:
        return TimeEntry(
            patient_id=patient_id,
            clinic_id=CLINIC_ID,
            clinician_id=STAFF_ID,
            entry_date=entry_date,
            duration_minutes=minutes,
            activity=activity,
            performer_type=performer,
        )

    return _make


@pytest.fixture
def clinic_snapshot(make_entry):
    """A clinic with three active enrollments and one ended one.

    Alice (RPM_CCM): 16 device days, 55 RPM minutes (30 physician), 45 CCM staff minutes.
    Bob (RPM_PCM): 5 device days, 12 RPM minutes, 30 PCM staff minutes, 99453 already billed.
    Cara (RPM_ONLY): no data.
    Dan: enrollment ended, excluded from reports.
    """
    march = [date(2026, 3, 1) + timedelta(days=i) for i in range(16)]
    return BillingSnapshot(
        clinics=[ClinicRecord(id=CLINIC_ID, name="Lakeside Cardiology")],
        memberships=[
            MembershipRecord(clinic_id=CLINIC_ID, clinician_id=OWNER_ID, role=MembershipRole.OWNER),
            MembershipRecord(clinic_id=CLINIC_ID, clinician_id=STAFF_ID, role=MembershipRole.STAFF),
        ],
        enrollments=[
            Enrollment(
                id="enr-alice",
                patient_id="patient-1",
                patient_name="Alice",
                clinic_id=CLINIC_ID,
                clinician_id=OWNER_ID,
                billing_program=BillingProgram.RPM_CCM,
            ),
            Enrollment(
                id="enr-bob",
                patient_id="patient-2",
                patient_name="Bob",
                clinic_id=CLINIC_ID,
                clinician_id=OWNER_ID,
                billing_program=BillingProgram.RPM_PCM,
                initial_setup_billed_at=datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc),
            ),
            Enrollment(
                id="enr-cara",
                patient_id="patient-3",
                patient_name="Cara",
                clinic_id=CLINIC_ID,
                clinician_id=OWNER_ID,
                billing_program=BillingProgram.RPM_ONLY,
            ),
            Enrollment(
                id="enr-dan",
                patient_id="patient-4",
                patient_name="Dan",
                clinic_id=CLINIC_ID,
                clinician_id=OWNER_ID,
                status=EnrollmentStatus.ENDED,
            ),
        ],
        time_entries=[
            make_entry(25, TimeEntryActivity.PATIENT_REVIEW),
            make_entry(30, TimeEntryActivity.DOCUMENTATION, PerformerType.PHYSICIAN_QHP),
            make_entry(45, TimeEntryActivity.CARE_PLAN_UPDATE),
            # Outside the period
            make_entry(40, TimeEntryActivity.PATIENT_REVIEW, entry_date=date(2026, 2, 28)),
            make_entry(12, TimeEntryActivity.PATIENT_REVIEW, patient_id="patient-2"),
            make_entry(30, TimeEntryActivity.CARE_PLAN_UPDATE, patient_id="patient-2"),
            make_entry(60, TimeEntryActivity.PATIENT_REVIEW, patient_id="patient-4"),
        ],
        transmissions={
            "enr-alice": march + [date(2026, 2, 27)],
            "enr-bob": [date(2026, 3, d) for d in range(2, 7)],
            "enr-dan": march,
        },
    )


@pytest.fixture
def store(clinic_snapshot):
    return InMemoryBillingStore(clinic_snapshot)


@pytest.fixture
def assembler(store):
    return BillingReportAssembler(
        time_entries=store,
        transmissions=store,
        enrollments=store,
        setup_states=InMemorySetupStateRepository(store),
        max_concurrency=2,
    )
