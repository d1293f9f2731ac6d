"""SQLAlchemy repositories backing the billing engine's data feeds.

An AsyncSession does not allow concurrent operations, while the report
assembler issues reads concurrently. Repositories built by
``sql_repositories`` share one lock per session so their queries run one at
a time.
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from rpm_billing.config import get_settings
from rpm_billing.core.models import (
    Clinic,
    ClinicMembership,
    EnrollmentDB,
    Measurement,
    TimeEntryDB,
)
from rpm_billing.exceptions import NotFoundError, ValidationError
from rpm_billing.models.billing import (
    BillingProgram,
    Enrollment,
    EnrollmentStatus,
    InitialSetupState,
    TimeEntry,
)


def _as_uuid(value: str | uuid.UUID) -> Optional[uuid.UUID]:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


def _as_utc(ts: Optional[datetime]) -> Optional[datetime]:
    """SQLite drops tzinfo; stored timestamps are UTC."""
    if ts is None:
        return None
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def _zone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValidationError(f"Unknown timezone {name!r}") from None


def _to_enrollment(row: EnrollmentDB) -> Enrollment:
    return Enrollment(
        id=str(row.id),
        patient_id=str(row.patient_id),
        patient_name=row.patient.name if row.patient else "",
        clinic_id=str(row.clinic_id),
        clinician_id=str(row.clinician_id),
        billing_program=row.billing_program,
        status=row.status,
        enrolled_at=_as_utc(row.enrolled_at),
        timezone=row.timezone or get_settings().default_timezone,
        initial_setup_billed_at=_as_utc(row.initial_setup_billed_at),
    )


def _to_time_entry(row: TimeEntryDB) -> TimeEntry:
    return TimeEntry(
        patient_id=str(row.patient_id),
        clinic_id=str(row.clinic_id),
        clinician_id=str(row.clinician_id),
        entry_date=row.entry_date,
        duration_minutes=row.duration_minutes,
        activity=row.activity,
        performer_type=row.performer_type,
        notes=row.notes,
    )


class _SessionRepository:
    def __init__(self, session: AsyncSession, lock: Optional[asyncio.Lock] = None):
        self.session = session
        self._lock = lock or asyncio.Lock()

    async def _enrollment_row(self, enrollment_id: str) -> Optional[EnrollmentDB]:
        eid = _as_uuid(enrollment_id)
        if eid is None:
            return None
        return await self.session.get(EnrollmentDB, eid)


class SqlTimeEntryRepository(_SessionRepository):
    async def create(self, **kwargs) -> TimeEntryDB:
        async with self._lock:
            entry = TimeEntryDB(**kwargs)
            self.session.add(entry)
            await self.session.flush()
            return entry

    async def list_by_patient_and_period(
        self, patient_id: str, from_date: date, to_date: date
    ) -> list[TimeEntry]:
        pid = _as_uuid(patient_id)
        if pid is None:
            return []
        stmt = (
            select(TimeEntryDB)
            .where(
                TimeEntryDB.patient_id == pid,
                TimeEntryDB.entry_date >= from_date,
                TimeEntryDB.entry_date <= to_date,
            )
            .order_by(TimeEntryDB.entry_date, TimeEntryDB.created_at)
        )
        async with self._lock:
            result = await self.session.execute(stmt)
            return [_to_time_entry(row) for row in result.scalars().all()]


class SqlDeviceTransmissionRepository(_SessionRepository):
    """Derives transmission days from device-sourced measurements."""

    async def distinct_dates(self, enrollment_id: str, from_date: date, to_date: date) -> list[date]:
        async with self._lock:
            enrollment = await self._enrollment_row(enrollment_id)
            if enrollment is None:
                raise NotFoundError(f"Enrollment {enrollment_id} not found")

            # Period bounds are calendar days in the enrollment's timezone
            tz = _zone(enrollment.timezone or get_settings().default_timezone)
            start = datetime.combine(from_date, time.min, tzinfo=tz).astimezone(timezone.utc)
            end = datetime.combine(to_date + timedelta(days=1), time.min, tzinfo=tz).astimezone(timezone.utc)

            stmt = select(Measurement.timestamp).where(
                Measurement.patient_id == enrollment.patient_id,
                Measurement.timestamp >= start,
                Measurement.timestamp < end,
                Measurement.source != "manual",
            )
            result = await self.session.execute(stmt)
            timestamps = result.scalars().all()

        return sorted({_as_utc(ts).astimezone(tz).date() for ts in timestamps})


class SqlEnrollmentRepository(_SessionRepository):
    async def create(self, **kwargs) -> EnrollmentDB:
        async with self._lock:
            enrollment = EnrollmentDB(**kwargs)
            self.session.add(enrollment)
            await self.session.flush()
            return enrollment

    async def get(self, enrollment_id: str) -> Optional[Enrollment]:
        async with self._lock:
            row = await self._enrollment_row(enrollment_id)
            return _to_enrollment(row) if row else None

    async def active_for_clinic(self, clinic_id: str) -> list[Enrollment]:
        cid = _as_uuid(clinic_id)
        if cid is None:
            return []
        stmt = (
            select(EnrollmentDB)
            .where(EnrollmentDB.clinic_id == cid, EnrollmentDB.status == EnrollmentStatus.ACTIVE)
            .order_by(EnrollmentDB.enrolled_at)
        )
        async with self._lock:
            result = await self.session.execute(stmt)
            return [_to_enrollment(row) for row in result.scalars().all()]

    async def billing_program(self, enrollment_id: str) -> BillingProgram:
        async with self._lock:
            row = await self._enrollment_row(enrollment_id)
            if row is None:
                raise NotFoundError(f"Enrollment {enrollment_id} not found")
            return row.billing_program


class SqlInitialSetupStateRepository(_SessionRepository):
    async def get(self, enrollment_id: str) -> InitialSetupState:
        async with self._lock:
            row = await self._enrollment_row(enrollment_id)
            if row is None:
                raise NotFoundError(f"Enrollment {enrollment_id} not found")
            return InitialSetupState(
                enrollment_id=str(row.id), billed_at=_as_utc(row.initial_setup_billed_at)
            )

    async def mark_billed(self, enrollment_id: str, billed_at: datetime) -> InitialSetupState:
        async with self._lock:
            row = await self._enrollment_row(enrollment_id)
            if row is None:
                raise NotFoundError(f"Enrollment {enrollment_id} not found")
            if row.initial_setup_billed_at is None:
                row.initial_setup_billed_at = billed_at.astimezone(timezone.utc)
                await self.session.flush()
            return InitialSetupState(
                enrollment_id=str(row.id), billed_at=_as_utc(row.initial_setup_billed_at)
            )


class ClinicRepository(_SessionRepository):
    async def create(self, **kwargs) -> Clinic:
        async with self._lock:
            clinic = Clinic(**kwargs)
            self.session.add(clinic)
            await self.session.flush()
            return clinic

    async def get_by_id(self, clinic_id: str) -> Optional[Clinic]:
        cid = _as_uuid(clinic_id)
        if cid is None:
            return None
        async with self._lock:
            return await self.session.get(Clinic, cid)

    async def get_membership(self, clinic_id: str, clinician_id: str) -> Optional[ClinicMembership]:
        cid = _as_uuid(clinic_id)
        uid = _as_uuid(clinician_id)
        if cid is None or uid is None:
            return None
        stmt = select(ClinicMembership).where(
            ClinicMembership.clinic_id == cid,
            ClinicMembership.clinician_id == uid,
        )
        async with self._lock:
            result = await self.session.execute(stmt)
            return result.scalar_one_or_none()


@dataclass
class SqlRepositories:
    time_entries: SqlTimeEntryRepository
    transmissions: SqlDeviceTransmissionRepository
    enrollments: SqlEnrollmentRepository
    setup_states: SqlInitialSetupStateRepository
    clinics: ClinicRepository


def sql_repositories(session: AsyncSession) -> SqlRepositories:
    """Build every repository over one session, sharing its lock."""
    lock = asyncio.Lock()
    return SqlRepositories(
        time_entries=SqlTimeEntryRepository(session, lock),
        transmissions=SqlDeviceTransmissionRepository(session, lock),
        enrollments=SqlEnrollmentRepository(session, lock),
        setup_states=SqlInitialSetupStateRepository(session, lock),
        clinics=ClinicRepository(session, lock),
    )
