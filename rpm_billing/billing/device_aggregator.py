"""Count distinct device transmission days."""
from __future__ import annotations

from collections.abc import Iterable
from datetime import date

from rpm_billing.models.billing import DeviceTransmissionAggregate


def aggregate_transmission_days(dates: Iterable[date]) -> DeviceTransmissionAggregate:
    """Deduplicate transmission dates and count them.

    Band classification (99445 vs 99454) is left to the evaluator.
    """
    unique = sorted(set(dates))
    return DeviceTransmissionAggregate(total_days=len(unique), dates=unique)
