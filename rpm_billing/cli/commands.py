"""CLI commands for the billing engine."""

import asyncio
from collections import Counter
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from rpm_billing.billing.cpt_codes import CPT_CODE_LABELS, CPT_CODES
from rpm_billing.billing.engine import BillingReportAssembler
from rpm_billing.billing.repositories import (
    BillingSnapshot,
    InMemoryBillingStore,
    InMemorySetupStateRepository,
)
from rpm_billing.config import get_settings
from rpm_billing.exceptions import BillingError, ValidationError
from rpm_billing.models.billing import BillingPeriod, ClinicBillingReport, PatientBillingSummary

app = typer.Typer(
    name="rpm-billing",
    help="Remote monitoring and care management billing eligibility",
    add_completion=False,
)
console = Console()


def _parse_period(from_date: Optional[str], to_date: Optional[str], month: Optional[str]) -> BillingPeriod:
    """Build a period from --from/--to, --month YYYY-MM, or the current month."""
    try:
        if month:
            year, mon = (int(part) for part in month.split("-", 1))
            return BillingPeriod.for_month(year, mon)
        if from_date or to_date:
            if not (from_date and to_date):
                raise ValidationError("Both --from and --to are required")
            return BillingPeriod.of(date.fromisoformat(from_date), date.fromisoformat(to_date))
    except ValueError as e:
        raise ValidationError(f"Invalid period: {e}") from None
    today = datetime.now(timezone.utc).date()
    return BillingPeriod.for_month(today.year, today.month)


def _load_store(snapshot_file: Path) -> InMemoryBillingStore:
    if not snapshot_file.exists():
        console.print(f"[red]Snapshot file not found: {snapshot_file}[/red]")
        raise typer.Exit(1)
    return InMemoryBillingStore(BillingSnapshot.load(snapshot_file))


def _assembler(store: InMemoryBillingStore) -> BillingReportAssembler:
    return BillingReportAssembler(
        time_entries=store,
        transmissions=store,
        enrollments=store,
        setup_states=InMemorySetupStateRepository(store),
        max_concurrency=get_settings().report_max_concurrency,
    )


def _format_codes(codes: list[str]) -> str:
    """Group repeated add-on codes, e.g. 99457, 99458 x2."""
    counts = Counter(codes)
    seen: list[str] = []
    for code in codes:
        if code not in seen:
            seen.append(code)
    return ", ".join(f"{c} x{counts[c]}" if counts[c] > 1 else c for c in seen) or "-"


@app.command()
def report(
    snapshot_file: Path = typer.Argument(..., help="JSON billing snapshot"),
    clinic: str = typer.Option(..., "--clinic", "-c", help="Clinic ID"),
    from_date: Optional[str] = typer.Option(None, "--from", help="Period start (YYYY-MM-DD)"),
    to_date: Optional[str] = typer.Option(None, "--to", help="Period end (YYYY-MM-DD)"),
    month: Optional[str] = typer.Option(None, "--month", "-m", help="Billing month (YYYY-MM)"),
    output_json: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Build a clinic billing report from a snapshot."""
    try:
        store = _load_store(snapshot_file)
        period = _parse_period(from_date, to_date, month)
        result = asyncio.run(
            _assembler(store).clinic_report(clinic, period, clinic_name=store.clinic_name(clinic))
        )
    except BillingError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    if output_json:
        console.print_json(result.model_dump_json(by_alias=True))
    else:
        _display_clinic_report(result)


@app.command()
def patient(
    snapshot_file: Path = typer.Argument(..., help="JSON billing snapshot"),
    enrollment: str = typer.Option(..., "--enrollment", "-e", help="Enrollment ID"),
    from_date: Optional[str] = typer.Option(None, "--from", help="Period start (YYYY-MM-DD)"),
    to_date: Optional[str] = typer.Option(None, "--to", help="Period end (YYYY-MM-DD)"),
    month: Optional[str] = typer.Option(None, "--month", "-m", help="Billing month (YYYY-MM)"),
    output_json: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Show billing eligibility for one enrollment."""
    try:
        store = _load_store(snapshot_file)
        period = _parse_period(from_date, to_date, month)
        result = asyncio.run(_assembler(store).enrollment_summary(enrollment, period))
    except BillingError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    if output_json:
        console.print_json(result.model_dump_json(by_alias=True))
    else:
        _display_patient_summary(result)


def _display_clinic_report(result: ClinicBillingReport) -> None:
    summary = result.summary
    period = result.period
    console.print(
        Panel(
            f"[bold]Clinic:[/bold] {result.clinic_name or result.clinic_id}\n"
            f"[bold]Period:[/bold] {period.from_date.isoformat()} to {period.to_date.isoformat()}\n"
            f"[bold]Patients:[/bold] {summary.total_patients} "
            f"({summary.patients_with_device_data} with device data)\n"
            f"[bold]RPM minutes:[/bold] {summary.total_rpm_minutes}  "
            f"[bold]CCM minutes:[/bold] {summary.total_ccm_minutes}",
            title="Billing Summary",
        )
    )

    table = Table(title="Patients per Code")
    table.add_column("Code")
    table.add_column("Description")
    table.add_column("Patients", justify="right")
    for code, label in CPT_CODE_LABELS.items():
        count = getattr(summary, f"patients_with_{code}")
        if count:
            table.add_row(code, label, str(count))
    console.print(table)

    if result.patients:
        table = Table(title="Patients")
        table.add_column("Patient")
        table.add_column("Program")
        table.add_column("Days", justify="right")
        table.add_column("RPM min", justify="right")
        table.add_column("Eligible codes")
        for p in result.patients:
            table.add_row(
                p.patient_name or p.patient_id,
                p.billing_program.value,
                str(p.device_transmission.total_days),
                str(p.time.rpm_minutes),
                _format_codes(p.eligible_codes),
            )
        console.print(table)


def _display_patient_summary(result: PatientBillingSummary) -> None:
    device = result.device_transmission
    time = result.time
    setup = result.initial_setup
    billed = setup.billed_at.isoformat() if setup.billed_at else "not billed"
    console.print(
        Panel(
            f"[bold]Program:[/bold] {result.billing_program.value}\n"
            f"[bold]Transmission days:[/bold] {device.total_days}\n"
            f"[bold]RPM minutes:[/bold] {time.rpm_minutes} "
            f"(physician {time.rpm_physician_minutes})\n"
            f"[bold]CCM minutes:[/bold] staff {time.ccm_clinical_staff_minutes}, "
            f"physician {time.ccm_physician_minutes}\n"
            f"[bold]PCM minutes:[/bold] staff {time.pcm_clinical_staff_minutes}, "
            f"physician {time.pcm_physician_minutes}\n"
            f"[bold]99453:[/bold] {billed}",
            title=f"Billing: {result.patient_name or result.patient_id}",
        )
    )

    table = Table(title="Eligible Codes")
    table.add_column("Code")
    table.add_column("Units", justify="right")
    table.add_column("Description")
    for code, units in Counter(result.eligible_codes).items():
        table.add_row(code, str(units), CPT_CODE_LABELS.get(code, ""))
    console.print(table)


@app.command()
def codes():
    """List the CPT reference table."""
    table = Table(title="CPT Codes")
    table.add_column("Code")
    table.add_column("Family")
    table.add_column("Kind")
    table.add_column("Description")
    for c in CPT_CODES.values():
        kind = f"{c.kind} ({c.base_code})" if c.base_code else c.kind
        table.add_row(c.code, c.family, kind, c.description)
    console.print(table)


@app.command()
def serve(
    host: str = typer.Option("0.0.0.0", "--host", "-h", help="Host to bind"),
    port: int = typer.Option(8080, "--port", "-p", help="Port to bind"),
    reload: bool = typer.Option(False, "--reload", help="Enable auto-reload"),
):
    """Start the REST API server."""
    import uvicorn

    console.print(f"Starting billing API server on {host}:{port}")
    uvicorn.run(
        "rpm_billing.api.app:create_app",
        host=host,
        port=port,
        reload=reload,
        factory=True,
    )


@app.command()
def init_db():
    """Create database tables."""
    from rpm_billing.core.database import init_db as _init_db

    asyncio.run(_init_db())
    console.print("[green]Database tables created[/green]")


if __name__ == "__main__":
    app()
