"""99453 initial setup: the only rule with lifetime scope.

99453 is billable once per enrollment, in the first period the patient
reaches the high device-day band. Whether it has been billed is recorded by
an explicit confirmation; generating a report never records it.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from rpm_billing.billing.repositories import InitialSetupStateRepository
from rpm_billing.billing.rules import DEFAULT_RULES, BillingRules
from rpm_billing.models.billing import InitialSetupState, InitialSetupSummary

logger = logging.getLogger(__name__)


def evaluate_initial_setup(
    state: InitialSetupState,
    total_days: int,
    rules: BillingRules = DEFAULT_RULES,
) -> InitialSetupSummary:
    already_billed = state.billed_at is not None
    return InitialSetupSummary(
        eligible_99453=total_days >= rules.device_days_high and not already_billed,
        already_billed=already_billed,
        billed_at=state.billed_at,
    )


async def confirm_initial_setup_billed(
    repository: InitialSetupStateRepository,
    enrollment_id: str,
    billed_at: Optional[datetime] = None,
) -> InitialSetupState:
    """Record that 99453 has been billed for an enrollment.

    Idempotent: confirming an already-billed enrollment keeps the original
    timestamp.

    Args:
        repository: Setup state store to write to.
        enrollment_id: Enrollment being confirmed.
        billed_at: Claim timestamp; defaults to now (UTC).

    Returns:
        The enrollment's setup state after the write.
    """
    current = await repository.get(enrollment_id)
    if current.billed_at is not None:
        logger.info(
            "99453 already confirmed for enrollment %s at %s",
            enrollment_id,
            current.billed_at.isoformat(),
        )
        return current

    billed_at = billed_at or datetime.now(timezone.utc)
    if billed_at.tzinfo is None:
        billed_at = billed_at.replace(tzinfo=timezone.utc)
    state = await repository.mark_billed(enrollment_id, billed_at)
    logger.info("Confirmed 99453 billed for enrollment %s", enrollment_id)
    return state
