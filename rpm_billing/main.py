"""Main entry point for the billing engine."""

import logging
import sys
from pathlib import Path
from typing import Optional

from rpm_billing.config import get_settings
from rpm_billing.models.billing import BillingPeriod, ClinicBillingReport


def setup_logging(level: Optional[str] = None):
    """Configure logging based on settings.

    Logs go to stderr so ``--json`` output on stdout stays machine-readable.
    """
    settings = get_settings()

    logging.basicConfig(
        level=getattr(logging, level or settings.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )
    if not settings.debug_mode:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def main():
    """Main entry point - runs CLI."""
    setup_logging()

    from rpm_billing.cli.commands import app

    app()


async def run_clinic_report(
    snapshot_path: Path,
    clinic_id: str,
    period: BillingPeriod,
) -> ClinicBillingReport:
    """Programmatic API for building a clinic report from a snapshot file.

    Example:
        import asyncio
        from rpm_billing.main import run_clinic_report
        from rpm_billing.models import BillingPeriod

        report = asyncio.run(run_clinic_report(
            Path("march.json"), "clinic-1", BillingPeriod.for_month(2026, 3),
        ))
    """
    from rpm_billing.billing.engine import BillingReportAssembler
    from rpm_billing.billing.repositories import (
        BillingSnapshot,
        InMemoryBillingStore,
        InMemorySetupStateRepository,
    )

    store = InMemoryBillingStore(BillingSnapshot.load(snapshot_path))
    assembler = BillingReportAssembler(
        time_entries=store,
        transmissions=store,
        enrollments=store,
        setup_states=InMemorySetupStateRepository(store),
        max_concurrency=get_settings().report_max_concurrency,
    )
    return await assembler.clinic_report(clinic_id, period, clinic_name=store.clinic_name(clinic_id))


if __name__ == "__main__":
    main()
