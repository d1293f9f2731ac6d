"""FastAPI dependencies for caller identity and observability."""

from __future__ import annotations

import uuid

from fastapi import Depends, HTTPException, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from rpm_billing.core.database import get_db
from rpm_billing.core.models import Clinician
from rpm_billing.observability import ObservabilityLogger, get_observability_logger


async def get_current_clinician(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> Clinician:
    """Resolve the calling clinician from the X-Clinician-Id header.

    API key checks happen in APIKeyMiddleware; this only identifies the
    caller. Raises 401 when the header is missing or names no active clinician.
    """
    clinician_id = request.headers.get("X-Clinician-Id")
    if not clinician_id:
        raise HTTPException(status_code=401, detail="Not authenticated")
    try:
        cid = uuid.UUID(clinician_id)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid X-Clinician-Id")

    result = await db.execute(
        select(Clinician).where(Clinician.id == cid, Clinician.active.is_(True))
    )
    clinician = result.scalar_one_or_none()
    if clinician is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return clinician


def get_obs_logger() -> ObservabilityLogger:
    return get_observability_logger()
