"""Billing report endpoints: clinic reports, patient summaries and 99453 confirmation."""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from rpm_billing.api.dependencies import get_current_clinician, get_obs_logger
from rpm_billing.billing.cpt_codes import CPT_CODES, CPTCode
from rpm_billing.billing.engine import BillingReportAssembler
from rpm_billing.billing.initial_setup import confirm_initial_setup_billed
from rpm_billing.config import get_settings
from rpm_billing.core.database import get_db
from rpm_billing.core.models import Clinician
from rpm_billing.core.repository import ClinicRepository, SqlRepositories, sql_repositories
from rpm_billing.exceptions import AuthorizationError, NotFoundError, ValidationError
from rpm_billing.models.billing import (
    BillingPeriod,
    ClinicBillingReport,
    MembershipRole,
    PatientBillingSummary,
)
from rpm_billing.observability import ObservabilityLogger

logger = logging.getLogger(__name__)

router = APIRouter()

REPORT_ROLES = frozenset({MembershipRole.OWNER, MembershipRole.ADMIN})


# ---------------------------------------------------------------------------
# Pydantic request/response schemas
# ---------------------------------------------------------------------------

class ConfirmSetupRequest(BaseModel):
    billed_at: datetime | None = None


class ConfirmSetupResponse(BaseModel):
    enrollment_id: str
    billed_at: datetime | None = None
    was_already_billed: bool = False


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _resolve_period(from_date: Optional[date], to_date: Optional[date]) -> BillingPeriod:
    """Explicit range, or the current calendar month when both are omitted."""
    if from_date is None and to_date is None:
        today = datetime.now(timezone.utc).date()
        return BillingPeriod.for_month(today.year, today.month)
    if from_date is None or to_date is None:
        raise ValidationError("Both 'from' and 'to' are required when either is given")
    return BillingPeriod.of(from_date, to_date)


async def _require_membership(
    clinics: ClinicRepository,
    clinic_id: str,
    clinician: Clinician,
    roles: Optional[frozenset[MembershipRole]] = None,
) -> None:
    membership = await clinics.get_membership(clinic_id, str(clinician.id))
    if membership is None or not membership.active:
        raise AuthorizationError("Not a member of this clinic")
    if roles is not None and membership.role not in roles:
        raise AuthorizationError("Owner or admin role required for billing reports")


def _request_id(request: Request) -> Optional[str]:
    return getattr(request.state, "request_id", None)


def _assembler(repos: SqlRepositories) -> BillingReportAssembler:
    return BillingReportAssembler(
        time_entries=repos.time_entries,
        transmissions=repos.transmissions,
        enrollments=repos.enrollments,
        setup_states=repos.setup_states,
        max_concurrency=get_settings().report_max_concurrency,
    )


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.get("/billing/codes", response_model=list[CPTCode])
async def list_cpt_codes() -> list[CPTCode]:
    """CPT reference table (labels for eligible codes)."""
    return list(CPT_CODES.values())


@router.get("/clinics/{clinic_id}/billing", response_model=ClinicBillingReport)
async def get_clinic_billing_report(
    clinic_id: str,
    request: Request,
    from_date: Optional[date] = Query(None, alias="from"),
    to_date: Optional[date] = Query(None, alias="to"),
    db: AsyncSession = Depends(get_db),
    current_user: Clinician = Depends(get_current_clinician),
    obs: ObservabilityLogger = Depends(get_obs_logger),
) -> ClinicBillingReport:
    """Billing eligibility for every active enrollment in a clinic."""
    period = _resolve_period(from_date, to_date)
    repos = sql_repositories(db)

    # Unknown clinics answer 403, same as clinics the caller is not in
    await _require_membership(repos.clinics, clinic_id, current_user, REPORT_ROLES)
    clinic = await repos.clinics.get_by_id(clinic_id)
    if clinic is None:
        raise NotFoundError(f"Clinic {clinic_id} not found")

    with obs.report_run(
        "clinic",
        clinic_id=clinic_id,
        period_from=period.from_date.isoformat(),
        period_to=period.to_date.isoformat(),
        request_id=_request_id(request),
    ) as event:
        report = await _assembler(repos).clinic_report(clinic_id, period, clinic_name=clinic.name)
        event.patient_count = report.summary.total_patients
        event.eligible_code_count = sum(len(p.eligible_codes) for p in report.patients)

    return report


@router.get("/enrollments/{enrollment_id}/billing", response_model=PatientBillingSummary)
async def get_enrollment_billing_summary(
    enrollment_id: str,
    request: Request,
    from_date: Optional[date] = Query(None, alias="from"),
    to_date: Optional[date] = Query(None, alias="to"),
    db: AsyncSession = Depends(get_db),
    current_user: Clinician = Depends(get_current_clinician),
    obs: ObservabilityLogger = Depends(get_obs_logger),
) -> PatientBillingSummary:
    """Billing eligibility for a single enrollment."""
    period = _resolve_period(from_date, to_date)
    repos = sql_repositories(db)

    enrollment = await repos.enrollments.get(enrollment_id)
    if enrollment is None:
        raise NotFoundError(f"Enrollment {enrollment_id} not found")
    await _require_membership(repos.clinics, enrollment.clinic_id, current_user)

    with obs.report_run(
        "patient",
        clinic_id=enrollment.clinic_id,
        enrollment_id=enrollment_id,
        period_from=period.from_date.isoformat(),
        period_to=period.to_date.isoformat(),
        request_id=_request_id(request),
    ) as event:
        summary = await _assembler(repos).patient_summary(enrollment, period)
        event.patient_count = 1
        event.eligible_code_count = len(summary.eligible_codes)

    return summary


@router.post(
    "/enrollments/{enrollment_id}/initial-setup/confirm",
    response_model=ConfirmSetupResponse,
)
async def confirm_initial_setup(
    enrollment_id: str,
    request: Request,
    body: Optional[ConfirmSetupRequest] = None,
    db: AsyncSession = Depends(get_db),
    current_user: Clinician = Depends(get_current_clinician),
    obs: ObservabilityLogger = Depends(get_obs_logger),
) -> ConfirmSetupResponse:
    """Record that 99453 has been billed. The only write the engine exposes."""
    repos = sql_repositories(db)

    enrollment = await repos.enrollments.get(enrollment_id)
    if enrollment is None:
        raise NotFoundError(f"Enrollment {enrollment_id} not found")
    await _require_membership(repos.clinics, enrollment.clinic_id, current_user, REPORT_ROLES)

    was_already_billed = enrollment.initial_setup_billed_at is not None
    state = await confirm_initial_setup_billed(
        repos.setup_states,
        enrollment_id,
        billed_at=body.billed_at if body else None,
    )
    obs.log_setup_confirmation(
        enrollment_id=enrollment_id,
        billed_at=state.billed_at,
        was_already_billed=was_already_billed,
        confirmed_by=str(current_user.id),
        request_id=_request_id(request),
    )

    return ConfirmSetupResponse(
        enrollment_id=enrollment_id,
        billed_at=state.billed_at,
        was_already_billed=was_already_billed,
    )
