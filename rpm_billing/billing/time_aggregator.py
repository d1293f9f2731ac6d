"""Sum logged clinician minutes into billing buckets.

Each activity counts toward exactly one family: RPM activities feed the RPM
time codes, care-management activities feed CCM or PCM (which one is decided
by the enrollment's billing program at evaluation time). Care-management
minutes are tracked under both CCM and PCM buckets here; the evaluator
surfaces at most one of them.
"""
from __future__ import annotations

from collections.abc import Iterable

from rpm_billing.models.billing import (
    CARE_MANAGEMENT_ACTIVITIES,
    RPM_ACTIVITIES,
    PerformerType,
    TimeAggregate,
    TimeEntry,
    TimeEntryActivity,
)


def aggregate_time_entries(entries: Iterable[TimeEntry]) -> TimeAggregate:
    """Aggregate a patient's time entries for one period.

    Args:
        entries: Time entries already filtered to the patient and period.

    Returns:
        TimeAggregate with minutes per activity, family, and performer.
    """
    by_activity: dict[TimeEntryActivity, int] = {}
    total = 0
    rpm = 0
    rpm_physician = 0
    cm_staff = 0
    cm_physician = 0

    for entry in entries:
        minutes = entry.duration_minutes
        total += minutes
        by_activity[entry.activity] = by_activity.get(entry.activity, 0) + minutes

        is_physician = entry.performer_type == PerformerType.PHYSICIAN_QHP
        if entry.activity in RPM_ACTIVITIES:
            rpm += minutes
            if is_physician:
                rpm_physician += minutes
        elif entry.activity in CARE_MANAGEMENT_ACTIVITIES:
            if is_physician:
                cm_physician += minutes
            else:
                cm_staff += minutes

    return TimeAggregate(
        total_minutes=total,
        by_activity=by_activity,
        rpm_minutes=rpm,
        rpm_physician_minutes=rpm_physician,
        care_management_minutes=cm_staff + cm_physician,
        ccm_clinical_staff_minutes=cm_staff,
        ccm_physician_minutes=cm_physician,
        pcm_clinical_staff_minutes=cm_staff,
        pcm_physician_minutes=cm_physician,
    )
