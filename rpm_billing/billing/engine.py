"""Billing engine: assembles patient and clinic billing reports.

Per-patient evaluation is a map over active enrollments (run concurrently,
bounded by a semaphore); the clinic summary is a fold over single-patient
summaries with an associative, commutative merge, so completion order never
affects the result.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from functools import reduce
from typing import Optional

from rpm_billing.billing.device_aggregator import aggregate_transmission_days
from rpm_billing.billing.evaluator import evaluate_patient
from rpm_billing.billing.repositories import (
    DeviceTransmissionRepository,
    EnrollmentRepository,
    InitialSetupStateRepository,
    TimeEntryRepository,
)
from rpm_billing.billing.rules import BillingRules
from rpm_billing.billing.time_aggregator import aggregate_time_entries
from rpm_billing.exceptions import NotFoundError
from rpm_billing.models.billing import (
    BillingPeriod,
    ClinicBillingReport,
    ClinicBillingSummary,
    Enrollment,
    PatientBillingSummary,
)

logger = logging.getLogger(__name__)


def merge_clinic_summaries(a: ClinicBillingSummary, b: ClinicBillingSummary) -> ClinicBillingSummary:
    """Field-wise sum of two partial clinic summaries."""
    return ClinicBillingSummary(
        **{name: getattr(a, name) + getattr(b, name) for name in ClinicBillingSummary.model_fields}
    )


def summarize_clinic(patients: Iterable[PatientBillingSummary]) -> ClinicBillingSummary:
    """Roll patient summaries into clinic-level counts and minute totals.

    An empty iterable yields an all-zero summary.
    """
    return reduce(
        merge_clinic_summaries,
        (ClinicBillingSummary.from_patient(p) for p in patients),
        ClinicBillingSummary(),
    )


class BillingReportAssembler:
    """Runs the aggregators and evaluator over enrollments."""

    def __init__(
        self,
        time_entries: TimeEntryRepository,
        transmissions: DeviceTransmissionRepository,
        enrollments: EnrollmentRepository,
        setup_states: InitialSetupStateRepository,
        max_concurrency: int = 8,
        rules: Optional[BillingRules] = None,
    ):
        """Initialize the assembler.

        Args:
            time_entries: Source of logged clinician time.
            transmissions: Source of distinct device transmission dates.
            enrollments: Source of enrollments and their billing programs.
            setup_states: Source of lifetime 99453 state (read only here).
            max_concurrency: Maximum enrollments evaluated at once.
            rules: Rule table override; defaults to the rules in force per period.
        """
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self.time_entries = time_entries
        self.transmissions = transmissions
        self.enrollments = enrollments
        self.setup_states = setup_states
        self.max_concurrency = max_concurrency
        self.rules = rules

    async def patient_summary(self, enrollment: Enrollment, period: BillingPeriod) -> PatientBillingSummary:
        """Evaluate one enrollment for a period."""
        entries, dates, setup_state, program = await asyncio.gather(
            self.time_entries.list_by_patient_and_period(
                enrollment.patient_id, period.from_date, period.to_date
            ),
            self.transmissions.distinct_dates(enrollment.id, period.from_date, period.to_date),
            self.setup_states.get(enrollment.id),
            self.enrollments.billing_program(enrollment.id),
        )

        return evaluate_patient(
            patient_id=enrollment.patient_id,
            patient_name=enrollment.patient_name,
            enrollment_id=enrollment.id,
            period=period,
            time=aggregate_time_entries(entries),
            device=aggregate_transmission_days(dates),
            billing_program=program,
            initial_setup_state=setup_state,
            rules=self.rules,
        )

    async def enrollment_summary(self, enrollment_id: str, period: BillingPeriod) -> PatientBillingSummary:
        """Evaluate an enrollment looked up by id."""
        enrollment = await self.enrollments.get(enrollment_id)
        if enrollment is None:
            raise NotFoundError(f"Enrollment {enrollment_id} not found")
        return await self.patient_summary(enrollment, period)

    async def clinic_report(
        self,
        clinic_id: str,
        period: BillingPeriod,
        clinic_name: str = "",
    ) -> ClinicBillingReport:
        """Evaluate every active enrollment in a clinic and roll up the results.

        Args:
            clinic_id: Clinic to report on.
            period: Inclusive billing period.
            clinic_name: Display name carried into the report.

        Returns:
            ClinicBillingReport with per-patient summaries and the clinic summary.
        """
        enrollments = await self.enrollments.active_for_clinic(clinic_id)

        # One summary per patient; the first active enrollment wins
        by_patient: dict[str, Enrollment] = {}
        for enrollment in enrollments:
            by_patient.setdefault(enrollment.patient_id, enrollment)

        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def _bounded(enrollment: Enrollment) -> PatientBillingSummary:
            async with semaphore:
                return await self.patient_summary(enrollment, period)

        patients = await asyncio.gather(*(_bounded(e) for e in by_patient.values()))
        patients = sorted(patients, key=lambda p: (p.patient_name, p.patient_id))

        summary = summarize_clinic(patients)
        logger.info(
            "Built billing report for clinic %s (%s to %s): %d patients",
            clinic_id,
            period.from_date.isoformat(),
            period.to_date.isoformat(),
            summary.total_patients,
        )

        return ClinicBillingReport(
            clinic_id=clinic_id,
            clinic_name=clinic_name,
            period=period,
            summary=summary,
            patients=patients,
        )
