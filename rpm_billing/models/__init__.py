"""Data models for the billing engine."""

from rpm_billing.models.billing import (
    BillingPeriod,
    BillingProgram,
    ClinicBillingReport,
    ClinicBillingSummary,
    DeviceTransmissionAggregate,
    DeviceTransmissionSummary,
    Enrollment,
    EnrollmentStatus,
    InitialSetupState,
    InitialSetupSummary,
    MembershipRole,
    PatientBillingSummary,
    PerformerType,
    TimeAggregate,
    TimeEntry,
    TimeEntryActivity,
    TimeSummary,
)

__all__ = [
    "BillingPeriod",
    "BillingProgram",
    "ClinicBillingReport",
    "ClinicBillingSummary",
    "DeviceTransmissionAggregate",
    "DeviceTransmissionSummary",
    "Enrollment",
    "EnrollmentStatus",
    "InitialSetupState",
    "InitialSetupSummary",
    "MembershipRole",
    "PatientBillingSummary",
    "PerformerType",
    "TimeAggregate",
    "TimeEntry",
    "TimeEntryActivity",
    "TimeSummary",
]
