"""Tests for SQL billing repositories using async SQLite."""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from rpm_billing.billing.engine import BillingReportAssembler
from rpm_billing.billing.initial_setup import confirm_initial_setup_billed
from rpm_billing.core.models import (
    Base,
    Clinic,
    ClinicMembership,
    Clinician,
    EnrollmentDB,
    Measurement,
    Patient,
)
from rpm_billing.core.repository import sql_repositories
from rpm_billing.exceptions import NotFoundError, ValidationError
from rpm_billing.models.billing import (
    BillingPeriod,
    BillingProgram,
    EnrollmentStatus,
    MembershipRole,
    PerformerType,
    TimeEntryActivity,
)

CLINIC_ID = uuid.UUID("11111111-1111-1111-1111-111111111111")
CLINICIAN_ID = uuid.UUID("22222222-2222-2222-2222-222222222222")
PATIENT_ID = uuid.UUID("33333333-3333-3333-3333-333333333333")
ENROLLMENT_ID = uuid.UUID("44444444-4444-4444-4444-444444444444")


def _utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


@pytest.fixture
async def session():
    engine = create_async_engine("sqlite+aiosqlite://", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with factory() as sess:
        yield sess
        await sess.rollback()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
async def seeded(session: AsyncSession):
    """One clinic, an owner, and a patient enrolled in New York time."""
    session.add_all([
        Clinic(id=CLINIC_ID, name="Harbor Internal Medicine"),
        Clinician(id=CLINICIAN_ID, name="Dr. Rivera", email="rivera@example.com"),
        Patient(id=PATIENT_ID, name="Evelyn Park"),
    ])
    await session.flush()
    session.add_all([
        ClinicMembership(clinic_id=CLINIC_ID, clinician_id=CLINICIAN_ID, role=MembershipRole.OWNER),
        EnrollmentDB(
            id=ENROLLMENT_ID,
            patient_id=PATIENT_ID,
            clinic_id=CLINIC_ID,
            clinician_id=CLINICIAN_ID,
            billing_program=BillingProgram.RPM_PCM,
            timezone="America/New_York",
            enrolled_at=_utc(2026, 1, 5, 15, 0),
        ),
    ])
    await session.flush()
    return sql_repositories(session)


def _measurement(ts: datetime, source: str = "device") -> Measurement:
    return Measurement(patient_id=PATIENT_ID, timestamp=ts, type="blood_pressure", value=128.0, source=source)


# --- Enrollments ---

async def test_enrollment_get(seeded):
    enrollment = await seeded.enrollments.get(str(ENROLLMENT_ID))
    assert enrollment is not None
    assert enrollment.patient_name == "Evelyn Park"
    assert enrollment.billing_program == BillingProgram.RPM_PCM
    assert enrollment.timezone == "America/New_York"


async def test_enrollment_get_unknown_or_malformed(seeded):
    assert await seeded.enrollments.get(str(uuid.uuid4())) is None
    assert await seeded.enrollments.get("not-a-uuid") is None


async def test_active_for_clinic_excludes_ended(seeded, session):
    other = Patient(name="Walter Ames")
    session.add(other)
    await session.flush()
    await seeded.enrollments.create(
        patient_id=other.id,
        clinic_id=CLINIC_ID,
        clinician_id=CLINICIAN_ID,
        status=EnrollmentStatus.ENDED,
    )

    active = await seeded.enrollments.active_for_clinic(str(CLINIC_ID))

    assert [e.id for e in active] == [str(ENROLLMENT_ID)]


async def test_billing_program(seeded):
    assert await seeded.enrollments.billing_program(str(ENROLLMENT_ID)) == BillingProgram.RPM_PCM
    with pytest.raises(NotFoundError):
        await seeded.enrollments.billing_program(str(uuid.uuid4()))


# --- Time entries ---

async def test_time_entries_filtered_by_period(seeded):
    for day, minutes in ((date(2026, 2, 28), 15), (date(2026, 3, 1), 20), (date(2026, 3, 31), 10)):
        await seeded.time_entries.create(
            patient_id=PATIENT_ID,
            clinic_id=CLINIC_ID,
            clinician_id=CLINICIAN_ID,
            entry_date=day,
            duration_minutes=minutes,
            activity=TimeEntryActivity.PATIENT_REVIEW,
            performer_type=PerformerType.CLINICAL_STAFF,
        )

    entries = await seeded.time_entries.list_by_patient_and_period(
        str(PATIENT_ID), date(2026, 3, 1), date(2026, 3, 31)
    )

    assert [e.duration_minutes for e in entries] == [20, 10]
    assert entries[0].activity == TimeEntryActivity.PATIENT_REVIEW


# --- Device transmissions ---

async def test_transmission_days_bucketed_in_enrollment_timezone(seeded, session):
    session.add_all([
        # 2026-03-01 03:00 UTC is still Feb 28 in New York
        _measurement(_utc(2026, 3, 1, 3, 0)),
        _measurement(_utc(2026, 3, 1, 15, 0)),
        _measurement(_utc(2026, 3, 1, 18, 0)),
        # 2026-04-01 02:00 UTC is still Mar 31 in New York
        _measurement(_utc(2026, 4, 1, 2, 0)),
    ])
    await session.flush()

    days = await seeded.transmissions.distinct_dates(
        str(ENROLLMENT_ID), date(2026, 3, 1), date(2026, 3, 31)
    )

    assert days == [date(2026, 3, 1), date(2026, 3, 31)]


async def test_manual_measurements_not_transmissions(seeded, session):
    session.add_all([
        _measurement(_utc(2026, 3, 10, 16, 0), source="manual"),
        _measurement(_utc(2026, 3, 11, 16, 0), source="device"),
    ])
    await session.flush()

    days = await seeded.transmissions.distinct_dates(
        str(ENROLLMENT_ID), date(2026, 3, 1), date(2026, 3, 31)
    )

    assert days == [date(2026, 3, 11)]


async def test_transmissions_unknown_enrollment(seeded):
    with pytest.raises(NotFoundError):
        await seeded.transmissions.distinct_dates(str(uuid.uuid4()), date(2026, 3, 1), date(2026, 3, 31))


async def test_invalid_timezone(seeded, session):
    enrollment = await session.get(EnrollmentDB, ENROLLMENT_ID)
    enrollment.timezone = "Mars/Olympus_Mons"
    await session.flush()

    with pytest.raises(ValidationError):
        await seeded.transmissions.distinct_dates(str(ENROLLMENT_ID), date(2026, 3, 1), date(2026, 3, 31))


# --- Initial setup ---

async def test_setup_state_unbilled(seeded):
    state = await seeded.setup_states.get(str(ENROLLMENT_ID))
    assert state.billed_at is None


async def test_mark_billed_is_idempotent(seeded):
    first = _utc(2026, 3, 31, 12, 0)

    await confirm_initial_setup_billed(seeded.setup_states, str(ENROLLMENT_ID), first)
    state = await seeded.setup_states.mark_billed(str(ENROLLMENT_ID), _utc(2026, 4, 30, 12, 0))

    assert state.billed_at == first


# --- Clinics ---

async def test_membership_lookup(seeded):
    membership = await seeded.clinics.get_membership(str(CLINIC_ID), str(CLINICIAN_ID))
    assert membership is not None
    assert membership.role == MembershipRole.OWNER
    assert await seeded.clinics.get_membership(str(CLINIC_ID), str(uuid.uuid4())) is None


# --- End to end through the assembler ---

async def test_clinic_report_over_sql(seeded, session):
    for day in range(1, 17):
        session.add(_measurement(_utc(2026, 3, day, 14, 0)))
    await seeded.time_entries.create(
        patient_id=PATIENT_ID,
        clinic_id=CLINIC_ID,
        clinician_id=CLINICIAN_ID,
        entry_date=date(2026, 3, 12),
        duration_minutes=60,
        activity=TimeEntryActivity.COORDINATION,
        performer_type=PerformerType.PHYSICIAN_QHP,
    )
    await session.flush()

    assembler = BillingReportAssembler(
        seeded.time_entries, seeded.transmissions, seeded.enrollments, seeded.setup_states
    )
    report = await assembler.clinic_report(str(CLINIC_ID), BillingPeriod.for_month(2026, 3))

    assert report.summary.total_patients == 1
    patient = report.patients[0]
    assert patient.patient_name == "Evelyn Park"
    assert patient.eligible_codes == ["99453", "99454", "99424", "99425"]
