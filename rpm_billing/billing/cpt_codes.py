"""CPT reference table for remote monitoring and care management billing.

Static labels shown next to eligible codes in billing reports. Nothing here
is computed; eligibility lives in the evaluator.
"""
from __future__ import annotations

from pydantic import BaseModel


class CPTCode(BaseModel):
    """A single CPT billing code with metadata."""

    code: str
    description: str
    family: str  # device | rpm_time | ccm | pcm
    kind: str = "base"  # base | addon | one_time
    base_code: str | None = None


# ── CPT Code Reference Table ─────────────────────────────────────────────────
# Based on the CMS 2026 Physician Fee Schedule remote monitoring codes

CPT_CODES: dict[str, CPTCode] = {
    "99453": CPTCode(
        code="99453",
        description="RPM initial setup and patient education",
        family="device",
        kind="one_time",
    ),
    "99445": CPTCode(
        code="99445",
        description="RPM device supply, 2-15 days of transmissions",
        family="device",
    ),
    "99454": CPTCode(
        code="99454",
        description="RPM device supply, 16+ days of transmissions",
        family="device",
    ),
    "99470": CPTCode(
        code="99470",
        description="RPM treatment management, first 10-19 minutes",
        family="rpm_time",
    ),
    "99457": CPTCode(
        code="99457",
        description="RPM treatment management, first 20 minutes",
        family="rpm_time",
    ),
    "99458": CPTCode(
        code="99458",
        description="RPM treatment management, each additional 20 minutes",
        family="rpm_time",
        kind="addon",
        base_code="99457",
    ),
    "99091": CPTCode(
        code="99091",
        description="Physician/QHP data interpretation, 30+ minutes",
        family="rpm_time",
    ),
    "99490": CPTCode(
        code="99490",
        description="CCM clinical staff, first 20 minutes",
        family="ccm",
    ),
    "99439": CPTCode(
        code="99439",
        description="CCM clinical staff, each additional 20 minutes",
        family="ccm",
        kind="addon",
        base_code="99490",
    ),
    "99491": CPTCode(
        code="99491",
        description="CCM physician/QHP, first 30 minutes",
        family="ccm",
    ),
    "99437": CPTCode(
        code="99437",
        description="CCM physician/QHP, each additional 30 minutes",
        family="ccm",
        kind="addon",
        base_code="99491",
    ),
    "99424": CPTCode(
        code="99424",
        description="PCM physician/QHP, first 30 minutes",
        family="pcm",
    ),
    "99425": CPTCode(
        code="99425",
        description="PCM physician/QHP, each additional 30 minutes",
        family="pcm",
        kind="addon",
        base_code="99424",
    ),
    "99426": CPTCode(
        code="99426",
        description="PCM clinical staff, first 30 minutes",
        family="pcm",
    ),
    "99427": CPTCode(
        code="99427",
        description="PCM clinical staff, each additional 30 minutes",
        family="pcm",
        kind="addon",
        base_code="99426",
    ),
}

CPT_CODE_LABELS: dict[str, str] = {code: c.description for code, c in CPT_CODES.items()}


def get_cpt_code(code: str) -> CPTCode | None:
    """Look up a code in the reference table."""
    return CPT_CODES.get(code)


def codes_for_family(family: str) -> list[CPTCode]:
    return [c for c in CPT_CODES.values() if c.family == family]
