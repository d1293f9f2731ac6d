"""Pydantic models for billing inputs, aggregates, and eligibility output."""

from __future__ import annotations

import calendar
from datetime import date, datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from rpm_billing.exceptions import ValidationError


class TimeEntryActivity(str, Enum):
    """Activity a clinician logged time against."""

    PATIENT_REVIEW = "PATIENT_REVIEW"
    DOCUMENTATION = "DOCUMENTATION"
    OTHER = "OTHER"
    CARE_PLAN_UPDATE = "CARE_PLAN_UPDATE"
    PHONE_CALL = "PHONE_CALL"
    COORDINATION = "COORDINATION"


class PerformerType(str, Enum):
    """Who performed the logged work."""

    CLINICAL_STAFF = "CLINICAL_STAFF"
    PHYSICIAN_QHP = "PHYSICIAN_QHP"


class BillingProgram(str, Enum):
    """Care-management track attached to an enrollment."""

    RPM_CCM = "RPM_CCM"
    RPM_PCM = "RPM_PCM"
    RPM_ONLY = "RPM_ONLY"


class EnrollmentStatus(str, Enum):
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"
    ENDED = "ENDED"


class MembershipRole(str, Enum):
    OWNER = "OWNER"
    ADMIN = "ADMIN"
    CLINICIAN = "CLINICIAN"
    STAFF = "STAFF"


# Activities billed against the RPM time codes (99470/99457/99458/99091)
RPM_ACTIVITIES: frozenset[TimeEntryActivity] = frozenset({
    TimeEntryActivity.PATIENT_REVIEW,
    TimeEntryActivity.DOCUMENTATION,
    TimeEntryActivity.OTHER,
})

# Activities billed against CCM or PCM, depending on the enrollment's program
CARE_MANAGEMENT_ACTIVITIES: frozenset[TimeEntryActivity] = frozenset({
    TimeEntryActivity.CARE_PLAN_UPDATE,
    TimeEntryActivity.PHONE_CALL,
    TimeEntryActivity.COORDINATION,
})


def _parse_enum(enum_cls: type[Enum], value: object, label: str):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).strip().upper())
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValidationError(f"Unknown {label} {value!r}; expected one of: {allowed}") from None


def parse_billing_program(value: object) -> BillingProgram:
    """Parse a billing program string, raising ValidationError on unknown values."""
    return _parse_enum(BillingProgram, value, "billing program")


def parse_activity(value: object) -> TimeEntryActivity:
    return _parse_enum(TimeEntryActivity, value, "time entry activity")


def parse_performer_type(value: object) -> PerformerType:
    return _parse_enum(PerformerType, value, "performer type")


# ── Inputs ───────────────────────────────────────────────────────────────────


class TimeEntry(BaseModel):
    """A block of logged clinician time for one patient."""

    patient_id: str
    clinic_id: str
    clinician_id: str
    entry_date: date
    duration_minutes: int = Field(gt=0)
    activity: TimeEntryActivity
    performer_type: PerformerType = PerformerType.CLINICAL_STAFF
    notes: Optional[str] = None


class Enrollment(BaseModel):
    """Binds a patient to a clinic, clinician, and billing program."""

    id: str
    patient_id: str
    patient_name: str = ""
    clinic_id: str
    clinician_id: str
    billing_program: BillingProgram = BillingProgram.RPM_CCM
    status: EnrollmentStatus = EnrollmentStatus.ACTIVE
    enrolled_at: Optional[datetime] = None
    timezone: str = "UTC"
    initial_setup_billed_at: Optional[datetime] = None


class BillingPeriod(BaseModel):
    """Inclusive calendar range a report covers."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    from_date: date = Field(alias="from")
    to_date: date = Field(alias="to")

    @model_validator(mode="after")
    def _check_order(self) -> "BillingPeriod":
        # Raised as the engine error; pydantic only wraps ValueError
        if self.from_date > self.to_date:
            raise ValidationError(
                f"Billing period start {self.from_date.isoformat()} is after end {self.to_date.isoformat()}"
            )
        return self

    @classmethod
    def of(cls, from_date: date, to_date: date) -> "BillingPeriod":
        return cls(from_date=from_date, to_date=to_date)

    @classmethod
    def for_month(cls, year: int, month: int) -> "BillingPeriod":
        if not 1 <= month <= 12:
            raise ValidationError(f"Invalid month: {month}")
        last_day = calendar.monthrange(year, month)[1]
        return cls.of(date(year, month, 1), date(year, month, last_day))

    def contains(self, day: date) -> bool:
        return self.from_date <= day <= self.to_date


class InitialSetupState(BaseModel):
    """Lifetime 99453 billing state for an enrollment."""

    enrollment_id: str
    billed_at: Optional[datetime] = None


# ── Aggregates ───────────────────────────────────────────────────────────────
# No range constraints here: the evaluator rejects negative values explicitly.


class TimeAggregate(BaseModel):
    """Minute totals bucketed by code family and performer type."""

    total_minutes: int = 0
    by_activity: dict[TimeEntryActivity, int] = Field(default_factory=dict)
    rpm_minutes: int = 0
    rpm_physician_minutes: int = 0
    care_management_minutes: int = 0
    ccm_clinical_staff_minutes: int = 0
    ccm_physician_minutes: int = 0
    pcm_clinical_staff_minutes: int = 0
    pcm_physician_minutes: int = 0


class DeviceTransmissionAggregate(BaseModel):
    total_days: int = 0
    dates: list[date] = Field(default_factory=list)


# ── Output ───────────────────────────────────────────────────────────────────


class DeviceTransmissionSummary(BaseModel):
    total_days: int = 0
    dates: list[date] = Field(default_factory=list)
    eligible_99445: bool = False  # 2-15 days
    eligible_99454: bool = False  # 16+ days


class TimeSummary(BaseModel):
    """Minute totals and time-based code eligibility for one patient."""

    total_minutes: int = 0
    by_activity: dict[TimeEntryActivity, int] = Field(default_factory=dict)
    rpm_minutes: int = 0
    rpm_physician_minutes: int = 0
    ccm_minutes: int = 0
    ccm_clinical_staff_minutes: int = 0
    ccm_physician_minutes: int = 0
    pcm_clinical_staff_minutes: int = 0
    pcm_physician_minutes: int = 0

    # RPM time
    eligible_99470: bool = False
    eligible_99457: bool = False
    eligible_99458_count: int = 0
    eligible_99091: bool = False

    # CCM
    eligible_99490: bool = False
    eligible_99439_count: int = 0
    eligible_99491: bool = False
    eligible_99437_count: int = 0

    # PCM
    eligible_99424: bool = False
    eligible_99425_count: int = 0
    eligible_99426: bool = False
    eligible_99427_count: int = 0


class InitialSetupSummary(BaseModel):
    eligible_99453: bool = False
    already_billed: bool = False
    billed_at: Optional[datetime] = None


class PatientBillingSummary(BaseModel):
    """Eligibility for every code family for one patient and period."""

    patient_id: str
    patient_name: str = ""
    enrollment_id: Optional[str] = None
    billing_program: BillingProgram
    period: BillingPeriod
    device_transmission: DeviceTransmissionSummary
    time: TimeSummary
    initial_setup: InitialSetupSummary
    eligible_codes: list[str] = Field(default_factory=list)


class ClinicBillingSummary(BaseModel):
    """Per-code patient counts and minute totals across a clinic."""

    total_patients: int = 0
    patients_with_device_data: int = 0
    patients_with_99453: int = 0
    patients_with_99445: int = 0
    patients_with_99454: int = 0
    patients_with_99470: int = 0
    patients_with_99457: int = 0
    patients_with_99458: int = 0
    patients_with_99091: int = 0
    patients_with_99490: int = 0
    patients_with_99439: int = 0
    patients_with_99491: int = 0
    patients_with_99437: int = 0
    patients_with_99424: int = 0
    patients_with_99425: int = 0
    patients_with_99426: int = 0
    patients_with_99427: int = 0
    total_rpm_minutes: int = 0
    total_ccm_minutes: int = 0

    @classmethod
    def from_patient(cls, patient: PatientBillingSummary) -> "ClinicBillingSummary":
        """Single-patient summary; the unit of the clinic fold."""
        device = patient.device_transmission
        time = patient.time
        return cls(
            total_patients=1,
            patients_with_device_data=int(device.total_days > 0),
            patients_with_99453=int(patient.initial_setup.eligible_99453),
            patients_with_99445=int(device.eligible_99445),
            patients_with_99454=int(device.eligible_99454),
            patients_with_99470=int(time.eligible_99470),
            patients_with_99457=int(time.eligible_99457),
            patients_with_99458=int(time.eligible_99458_count > 0),
            patients_with_99091=int(time.eligible_99091),
            patients_with_99490=int(time.eligible_99490),
            patients_with_99439=int(time.eligible_99439_count > 0),
            patients_with_99491=int(time.eligible_99491),
            patients_with_99437=int(time.eligible_99437_count > 0),
            patients_with_99424=int(time.eligible_99424),
            patients_with_99425=int(time.eligible_99425_count > 0),
            patients_with_99426=int(time.eligible_99426),
            patients_with_99427=int(time.eligible_99427_count > 0),
            total_rpm_minutes=time.rpm_minutes,
            total_ccm_minutes=time.ccm_minutes,
        )


class ClinicBillingReport(BaseModel):
    clinic_id: str
    clinic_name: str = ""
    period: BillingPeriod
    summary: ClinicBillingSummary = Field(default_factory=ClinicBillingSummary)
    patients: list[PatientBillingSummary] = Field(default_factory=list)
