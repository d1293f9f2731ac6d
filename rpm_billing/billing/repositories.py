"""Read-only data feeds the billing engine depends on.

The engine only sees these protocols and plain value types. ``core.repository``
implements them over SQLAlchemy; ``InMemoryBillingStore`` implements them over
a JSON snapshot for the CLI and tests.
"""
from __future__ import annotations

import json
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Optional, Protocol

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from rpm_billing.exceptions import NotFoundError, ValidationError
from rpm_billing.models.billing import (
    BillingProgram,
    Enrollment,
    EnrollmentStatus,
    InitialSetupState,
    MembershipRole,
    TimeEntry,
)


class TimeEntryRepository(Protocol):
    async def list_by_patient_and_period(
        self, patient_id: str, from_date: date, to_date: date
    ) -> list[TimeEntry]: ...


class DeviceTransmissionRepository(Protocol):
    async def distinct_dates(
        self, enrollment_id: str, from_date: date, to_date: date
    ) -> list[date]: ...


class EnrollmentRepository(Protocol):
    async def active_for_clinic(self, clinic_id: str) -> list[Enrollment]: ...

    async def billing_program(self, enrollment_id: str) -> BillingProgram: ...

    async def get(self, enrollment_id: str) -> Optional[Enrollment]: ...


class InitialSetupStateRepository(Protocol):
    async def get(self, enrollment_id: str) -> InitialSetupState: ...

    async def mark_billed(self, enrollment_id: str, billed_at: datetime) -> InitialSetupState: ...


# ---------------------------------------------------------------------------
# Snapshot-backed implementation
# ---------------------------------------------------------------------------


class ClinicRecord(BaseModel):
    id: str
    name: str = ""


class MembershipRecord(BaseModel):
    clinic_id: str
    clinician_id: str
    role: MembershipRole = MembershipRole.CLINICIAN
    active: bool = True


class BillingSnapshot(BaseModel):
    """A point-in-time export of everything a billing report reads.

    ``transmissions`` maps enrollment id to the calendar dates (in the
    enrollment's timezone) on which device readings arrived.
    """

    clinics: list[ClinicRecord] = Field(default_factory=list)
    memberships: list[MembershipRecord] = Field(default_factory=list)
    enrollments: list[Enrollment] = Field(default_factory=list)
    time_entries: list[TimeEntry] = Field(default_factory=list)
    transmissions: dict[str, list[date]] = Field(default_factory=dict)

    @classmethod
    def load(cls, path: Path) -> "BillingSnapshot":
        try:
            return cls.model_validate(json.loads(path.read_text()))
        except json.JSONDecodeError as e:
            raise ValidationError(f"Snapshot {path} is not valid JSON: {e}") from e
        except PydanticValidationError as e:
            raise ValidationError(f"Snapshot {path} failed validation: {e}") from e


class InMemoryBillingStore:
    """Implements every billing repository protocol over a snapshot."""

    def __init__(self, snapshot: Optional[BillingSnapshot] = None):
        snapshot = snapshot or BillingSnapshot()
        self.clinics: dict[str, ClinicRecord] = {c.id: c for c in snapshot.clinics}
        self.memberships: list[MembershipRecord] = list(snapshot.memberships)
        self.enrollments: dict[str, Enrollment] = {e.id: e for e in snapshot.enrollments}
        self.time_entries: list[TimeEntry] = list(snapshot.time_entries)
        self.transmissions: dict[str, set[date]] = {
            k: set(v) for k, v in snapshot.transmissions.items()
        }

    # TimeEntryRepository

    async def list_by_patient_and_period(
        self, patient_id: str, from_date: date, to_date: date
    ) -> list[TimeEntry]:
        return [
            e
            for e in self.time_entries
            if e.patient_id == patient_id and from_date <= e.entry_date <= to_date
        ]

    # DeviceTransmissionRepository

    async def distinct_dates(self, enrollment_id: str, from_date: date, to_date: date) -> list[date]:
        days = self.transmissions.get(enrollment_id, set())
        return sorted(d for d in days if from_date <= d <= to_date)

    # EnrollmentRepository

    async def active_for_clinic(self, clinic_id: str) -> list[Enrollment]:
        return [
            e
            for e in self.enrollments.values()
            if e.clinic_id == clinic_id and e.status == EnrollmentStatus.ACTIVE
        ]

    async def billing_program(self, enrollment_id: str) -> BillingProgram:
        enrollment = self.enrollments.get(enrollment_id)
        if enrollment is None:
            raise NotFoundError(f"Enrollment {enrollment_id} not found")
        return enrollment.billing_program

    async def get(self, enrollment_id: str) -> Optional[Enrollment]:
        return self.enrollments.get(enrollment_id)

    # Clinic lookups used by the CLI

    def clinic_name(self, clinic_id: str) -> str:
        clinic = self.clinics.get(clinic_id)
        return clinic.name if clinic else ""

    def membership_role(self, clinic_id: str, clinician_id: str) -> Optional[MembershipRole]:
        for m in self.memberships:
            if m.clinic_id == clinic_id and m.clinician_id == clinician_id and m.active:
                return m.role
        return None


class InMemorySetupStateRepository:
    """InitialSetupStateRepository over an ``InMemoryBillingStore``."""

    def __init__(self, store: InMemoryBillingStore):
        self.store = store

    async def get(self, enrollment_id: str) -> InitialSetupState:
        enrollment = self.store.enrollments.get(enrollment_id)
        if enrollment is None:
            raise NotFoundError(f"Enrollment {enrollment_id} not found")
        return InitialSetupState(
            enrollment_id=enrollment_id, billed_at=enrollment.initial_setup_billed_at
        )

    async def mark_billed(self, enrollment_id: str, billed_at: datetime) -> InitialSetupState:
        enrollment = self.store.enrollments.get(enrollment_id)
        if enrollment is None:
            raise NotFoundError(f"Enrollment {enrollment_id} not found")
        if enrollment.initial_setup_billed_at is None:
            self.store.enrollments[enrollment_id] = enrollment.model_copy(
                update={"initial_setup_billed_at": billed_at.astimezone(timezone.utc)}
            )
        return await self.get(enrollment_id)
