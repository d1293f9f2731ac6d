"""CPT eligibility evaluation for a single patient and billing period.

Pure function of the period's aggregates, the enrollment's billing program,
and its lifetime 99453 state. All threshold, cap, and mutual-exclusion rules
live here so every code family is classified in one place.
"""
from __future__ import annotations

from typing import Optional

from rpm_billing.billing.initial_setup import evaluate_initial_setup
from rpm_billing.billing.rules import BillingRules, add_on_blocks, rules_for_period
from rpm_billing.exceptions import InvalidAggregateError
from rpm_billing.models.billing import (
    BillingPeriod,
    BillingProgram,
    DeviceTransmissionAggregate,
    DeviceTransmissionSummary,
    InitialSetupState,
    PatientBillingSummary,
    TimeAggregate,
    TimeSummary,
    parse_billing_program,
)

_MINUTE_FIELDS = (
    "total_minutes",
    "rpm_minutes",
    "rpm_physician_minutes",
    "care_management_minutes",
    "ccm_clinical_staff_minutes",
    "ccm_physician_minutes",
    "pcm_clinical_staff_minutes",
    "pcm_physician_minutes",
)


def _check_aggregates(time: TimeAggregate, device: DeviceTransmissionAggregate) -> None:
    for name in _MINUTE_FIELDS:
        value = getattr(time, name)
        if value < 0:
            raise InvalidAggregateError(f"{name} is negative ({value})")
    for activity, value in time.by_activity.items():
        if value < 0:
            raise InvalidAggregateError(f"minutes for {activity.value} are negative ({value})")
    if device.total_days < 0:
        raise InvalidAggregateError(f"total_days is negative ({device.total_days})")


def classify_device_days(total_days: int, rules: BillingRules) -> DeviceTransmissionSummary:
    """Place a day count in exactly one band: none, 99445, or 99454."""
    eligible_99454 = total_days >= rules.device_days_high
    eligible_99445 = not eligible_99454 and total_days >= rules.device_days_low
    return DeviceTransmissionSummary(
        total_days=total_days,
        eligible_99445=eligible_99445,
        eligible_99454=eligible_99454,
    )


def _evaluate_time(time: TimeAggregate, program: BillingProgram, rules: BillingRules) -> TimeSummary:
    cap = rules.max_addon_blocks
    rpm = time.rpm_minutes

    # RPM time: 99470 and 99457 are separated by range
    eligible_99457 = rpm >= rules.rpm_minutes_high
    eligible_99470 = not eligible_99457 and rpm >= rules.rpm_minutes_low
    count_99458 = add_on_blocks(rpm, rules.rpm_minutes_high, rules.rpm_addon_block, cap)
    eligible_99091 = time.rpm_physician_minutes >= rules.rpm_physician_minutes

    summary = TimeSummary(
        total_minutes=time.total_minutes,
        by_activity=dict(time.by_activity),
        rpm_minutes=rpm,
        rpm_physician_minutes=time.rpm_physician_minutes,
        eligible_99470=eligible_99470,
        eligible_99457=eligible_99457,
        eligible_99458_count=count_99458,
        eligible_99091=eligible_99091,
    )

    if program == BillingProgram.RPM_CCM:
        staff = time.ccm_clinical_staff_minutes
        physician = time.ccm_physician_minutes
        summary.ccm_clinical_staff_minutes = staff
        summary.ccm_physician_minutes = physician
        summary.ccm_minutes = staff + physician
        summary.eligible_99490 = staff >= rules.ccm_staff_minutes
        summary.eligible_99439_count = add_on_blocks(
            staff, rules.ccm_staff_minutes, rules.ccm_staff_block, cap
        )
        summary.eligible_99491 = physician >= rules.ccm_physician_minutes
        summary.eligible_99437_count = add_on_blocks(
            physician, rules.ccm_physician_minutes, rules.ccm_physician_block, cap
        )
    elif program == BillingProgram.RPM_PCM:
        staff = time.pcm_clinical_staff_minutes
        physician = time.pcm_physician_minutes
        summary.pcm_clinical_staff_minutes = staff
        summary.pcm_physician_minutes = physician
        summary.eligible_99424 = physician >= rules.pcm_physician_minutes
        summary.eligible_99425_count = add_on_blocks(
            physician, rules.pcm_physician_minutes, rules.pcm_physician_block, cap
        )
        summary.eligible_99426 = staff >= rules.pcm_staff_minutes
        summary.eligible_99427_count = add_on_blocks(
            staff, rules.pcm_staff_minutes, rules.pcm_staff_block, cap
        )

    return summary


def build_eligible_codes(
    device: DeviceTransmissionSummary,
    time: TimeSummary,
    eligible_99453: bool,
) -> list[str]:
    """Ordered code list; add-on codes repeat once per billable block."""
    codes: list[str] = []

    if eligible_99453:
        codes.append("99453")

    if device.eligible_99454:
        codes.append("99454")
    elif device.eligible_99445:
        codes.append("99445")

    if time.eligible_99457:
        codes.append("99457")
        codes.extend(["99458"] * time.eligible_99458_count)
    elif time.eligible_99470:
        codes.append("99470")

    if time.eligible_99091:
        codes.append("99091")

    # Only one of the CCM / PCM groups can be populated for a given program
    for base, eligible, addon, count in (
        ("99490", time.eligible_99490, "99439", time.eligible_99439_count),
        ("99491", time.eligible_99491, "99437", time.eligible_99437_count),
        ("99424", time.eligible_99424, "99425", time.eligible_99425_count),
        ("99426", time.eligible_99426, "99427", time.eligible_99427_count),
    ):
        if eligible:
            codes.append(base)
            codes.extend([addon] * count)

    return codes


def evaluate_patient(
    *,
    patient_id: str,
    period: BillingPeriod,
    time: TimeAggregate,
    device: DeviceTransmissionAggregate,
    billing_program: BillingProgram,
    initial_setup_state: InitialSetupState,
    patient_name: str = "",
    enrollment_id: Optional[str] = None,
    rules: Optional[BillingRules] = None,
) -> PatientBillingSummary:
    """Apply the billing rule table to one patient's aggregates.

    Args:
        patient_id: Patient being evaluated.
        period: Billing period the aggregates cover.
        time: Output of ``aggregate_time_entries``.
        device: Output of ``aggregate_transmission_days``.
        billing_program: Enrollment's program; gates the CCM and PCM families.
        initial_setup_state: Lifetime 99453 state for the enrollment.
        patient_name: Display name carried into the summary.
        enrollment_id: Enrollment the summary belongs to.
        rules: Rule table override; defaults to the rules in force at period start.

    Returns:
        PatientBillingSummary with per-code flags and the ordered code list.

    Raises:
        InvalidAggregateError: If any minute or day total is negative.
        ValidationError: If the billing program is not a known program.
    """
    billing_program = parse_billing_program(billing_program)
    _check_aggregates(time, device)
    rules = rules or rules_for_period(period)

    device_summary = classify_device_days(device.total_days, rules)
    device_summary.dates = list(device.dates)

    time_summary = _evaluate_time(time, billing_program, rules)
    initial_setup = evaluate_initial_setup(initial_setup_state, device.total_days, rules)

    return PatientBillingSummary(
        patient_id=patient_id,
        patient_name=patient_name,
        enrollment_id=enrollment_id,
        billing_program=billing_program,
        period=period,
        device_transmission=device_summary,
        time=time_summary,
        initial_setup=initial_setup,
        eligible_codes=build_eligible_codes(
            device_summary, time_summary, initial_setup.eligible_99453
        ),
    )
