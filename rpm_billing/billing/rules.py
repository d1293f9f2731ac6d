"""CMS eligibility thresholds for remote monitoring and care management codes.

Thresholds are grouped into a ``BillingRules`` table keyed by the date the
rules took effect, so a historical period is evaluated under the rules that
were in force when it started.

2026 rule table:
  Device days     2-15 -> 99445     16+ -> 99454 (99453 once per enrollment)
  RPM minutes    10-19 -> 99470     20+ -> 99457, +99458 per extra 20 min (max 2)
  RPM physician    30+ -> 99091
  CCM staff        20+ -> 99490, +99439 per extra 20 min (max 2)
  CCM physician    30+ -> 99491, +99437 per extra 30 min (max 2)
  PCM physician    30+ -> 99424, +99425 per extra 30 min (max 2)
  PCM staff        30+ -> 99426, +99427 per extra 30 min (max 2)
"""
from __future__ import annotations

from datetime import date

from pydantic import BaseModel, ConfigDict

from rpm_billing.models.billing import BillingPeriod


class BillingRules(BaseModel):
    """A complete set of thresholds, block sizes, and add-on caps."""

    model_config = ConfigDict(frozen=True)

    name: str
    effective_from: date

    # Device transmission days
    device_days_low: int = 2
    device_days_high: int = 16

    # RPM treatment management time
    rpm_minutes_low: int = 10
    rpm_minutes_high: int = 20
    rpm_addon_block: int = 20
    rpm_physician_minutes: int = 30

    # CCM
    ccm_staff_minutes: int = 20
    ccm_staff_block: int = 20
    ccm_physician_minutes: int = 30
    ccm_physician_block: int = 30

    # PCM
    pcm_physician_minutes: int = 30
    pcm_physician_block: int = 30
    pcm_staff_minutes: int = 30
    pcm_staff_block: int = 30

    max_addon_blocks: int = 2


CMS_2026 = BillingRules(name="CMS 2026", effective_from=date(2026, 1, 1))

# Sorted by effective_from, oldest first
RULE_SETS: list[BillingRules] = [CMS_2026]

DEFAULT_RULES = RULE_SETS[-1]


def rules_for_date(day: date, rule_sets: list[BillingRules] | None = None) -> BillingRules:
    """Return the newest rule set in force on ``day``.

    Dates before the earliest registered set fall back to that set.
    """
    candidates = rule_sets or RULE_SETS
    selected = candidates[0]
    for rules in candidates:
        if rules.effective_from <= day:
            selected = rules
    return selected


def rules_for_period(period: BillingPeriod, rule_sets: list[BillingRules] | None = None) -> BillingRules:
    return rules_for_date(period.from_date, rule_sets)


def add_on_blocks(minutes: int, threshold: int, block_minutes: int, cap: int) -> int:
    """Count add-on blocks stacked on a base code.

    The base code consumes the first ``threshold`` minutes; each further full
    ``block_minutes`` earns one add-on unit, up to ``cap``. Below the
    threshold no add-on is billable.
    """
    if minutes < threshold:
        return 0
    return min(cap, (minutes - threshold) // block_minutes)
