"""Janus CLI — Command-line interface for the commission structure resolution engine.

Provides commands to run the full pipeline over a CSV snapshot, inspect group
conformance, verify structural invariants, and create the staging schema.
Uses Typer for argument parsing and Rich for formatted terminal output.

Usage::

    python -m janus.cli --help
    python -m janus.cli run --certificates certs.csv --brokers brokers.csv
    python -m janus.cli audit --certificates certs.csv --brokers brokers.csv
    python -m janus.cli verify --certificates certs.csv --brokers brokers.csv
    python -m janus.cli init-db
"""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

import typer
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from janus.config import settings
from janus.exceptions import JanusError

# ---------------------------------------------------------------------------
# App & console setup
# ---------------------------------------------------------------------------

app = typer.Typer(
    name="janus",
    help="Janus — resolve legacy broker splits into Proposals, Hierarchies and policy assignments.",
    add_completion=False,
    rich_markup_mode="rich",
)

console = Console()
err_console = Console(stderr=True, style="bold red")

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    stream=sys.stderr,
)
logger = logging.getLogger("janus.cli")

CertificatesOption = typer.Option(..., "--certificates", "-c", help="Certificate split rows CSV")
BrokersOption = typer.Option(..., "--brokers", "-b", help="Broker master CSV")
SchedulesOption = typer.Option(None, "--schedules", help="Optional schedule master CSV")

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _load_and_run(certificates: Path, brokers: Path, schedules: Optional[Path]):
    from janus.ingest import SnapshotLoader
    from janus.pipeline import MigrationPipeline

    snapshot = SnapshotLoader().load(certificates, brokers, schedules)
    pipeline = MigrationPipeline()
    with console.status("[bold green]Resolving commission structures...[/bold green]"):
        result = pipeline.run(snapshot)
    return pipeline, result


def _summary_table(result) -> Table:
    table = Table(title="Run Summary", box=box.ROUNDED)
    table.add_column("Metric", style="cyan", no_wrap=True)
    table.add_column("Value", style="green", justify="right")
    table.add_row("Certificates", str(len(result.extraction.certificates)))
    table.add_row("Inactive Rows Dropped", str(result.extraction.inactive_rows_dropped))
    table.add_row("Conformant Certificates", str(len(result.filtered.conformant)))
    table.add_row("Non-Conformant Keys", str(len(result.filtered.non_conformant_keys)))
    table.add_row("Flagged Groups", str(len(result.filtered.flagged_groups)))
    table.add_row("Proposals", str(len(result.classification.proposals)))
    table.add_row("Key Mappings", str(len(result.classification.key_mappings)))
    table.add_row("Hierarchies", str(len(result.hierarchies.hierarchies)))
    table.add_row("Broker Assignments", str(len(result.hierarchies.broker_assignments)))
    table.add_row("Policies Assigned", str(len(result.resolution.assignments)))
    table.add_row("Exception Assignments", str(len(result.exceptions.assignments)))
    table.add_row("Warnings", str(len(result.warnings)))
    return table


def _counts_table(title: str, label: str, counts: dict[str, int]) -> Table:
    table = Table(title=title, box=box.SIMPLE)
    table.add_column(label, style="cyan")
    table.add_column("Count", style="green", justify="right")
    for key, value in counts.items():
        table.add_row(key, str(value))
    return table


def _print_warnings(warnings: list[str], limit: int = 10) -> None:
    if not warnings:
        return
    console.print(f"\n[bold yellow]Warnings ({len(warnings)}):[/bold yellow]")
    for warning in warnings[:limit]:
        console.print(f"  [yellow]- {warning}[/yellow]")
    if len(warnings) > limit:
        console.print(f"  [dim]... {len(warnings) - limit} more[/dim]")


# ---------------------------------------------------------------------------
# Command: run
# ---------------------------------------------------------------------------


@app.command("run")
def run(
    certificates: Path = CertificatesOption,
    brokers: Path = BrokersOption,
    schedules: Optional[Path] = SchedulesOption,
    persist: bool = typer.Option(
        False, "--persist/--no-persist", help="Replace the staging tables with this run's output"
    ),
    database_url: Optional[str] = typer.Option(
        None, "--database-url", help="Override the staging database URL"
    ),
) -> None:
    """Run the full resolution pipeline over a snapshot.

    Examples:

      janus run -c certificates.csv -b brokers.csv

      janus run -c certificates.csv -b brokers.csv --persist
    """
    console.print(
        Panel(
            f"[bold cyan]Janus Resolution Run[/bold cyan]\n"
            f"Certificates: [yellow]{certificates}[/yellow]  "
            f"Brokers: [yellow]{brokers}[/yellow]  "
            f"Persist: [yellow]{persist}[/yellow]",
            title="Run",
            expand=False,
        )
    )

    try:
        if persist:
            from janus.ingest import SnapshotLoader
            from janus.pipeline import MigrationPipeline
            from janus.store import SnapshotStore

            snapshot = SnapshotLoader().load(certificates, brokers, schedules)

            async def _persisted():
                store = SnapshotStore(database_url=database_url)
                try:
                    await store.create_schema()
                    return await MigrationPipeline().run_and_persist(snapshot, store)
                finally:
                    await store.close()

            with console.status("[bold green]Resolving and persisting...[/bold green]"):
                result = asyncio.run(_persisted())
        else:
            _, result = _load_and_run(certificates, brokers, schedules)

        console.print(_summary_table(result))
        console.print(_counts_table("Classification Tiers", "Tier", result.classification.tier_counts))
        console.print(_counts_table("Resolution Provenance", "Tier", result.resolution.provenance_counts))
        console.print(_counts_table("Exception Reasons", "Reason", result.exceptions.reason_counts))
        _print_warnings(result.warnings)

    except JanusError as exc:
        err_console.print(f"Run failed: {exc}")
        raise typer.Exit(1)
    except typer.Exit:
        raise
    except Exception as exc:
        err_console.print(f"Run failed: {exc}")
        logger.exception("CLI run command failed")
        raise typer.Exit(1)


# ---------------------------------------------------------------------------
# Command: audit
# ---------------------------------------------------------------------------


@app.command("audit")
def audit(
    certificates: Path = CertificatesOption,
    brokers: Path = BrokersOption,
    schedules: Optional[Path] = SchedulesOption,
    only_failing: bool = typer.Option(
        False, "--only-failing", help="Show only groups that are not fully conformant"
    ),
) -> None:
    """Show per-group conformance classification."""
    try:
        _, result = _load_and_run(certificates, brokers, schedules)
        report = result.conformance

        table = Table(title="Group Conformance", box=box.ROUNDED)
        table.add_column("Group", style="cyan", no_wrap=True)
        table.add_column("Certificates", justify="right")
        table.add_column("Conformant", justify="right")
        table.add_column("Exceptions", justify="right")
        table.add_column("Percent", justify="right")
        table.add_column("Class", style="bold")

        styles = {
            "Conformant": "green",
            "Nearly-Conformant": "yellow",
            "Non-Conformant": "red",
        }
        for record in report.records:
            if only_failing and record.classification.value == "Conformant":
                continue
            style = styles[record.classification.value]
            table.add_row(
                record.group_id + (" [red]*[/red]" if record.is_flagged else ""),
                str(record.total_certificates),
                str(record.conformant_certificates),
                str(record.exception_certificates),
                f"{record.conformance_percent}%",
                f"[{style}]{record.classification.value}[/{style}]",
            )
        console.print(table)
        console.print(
            f"Overall: [bold]{report.overall_percent}%[/bold] of "
            f"{report.total_certificates} certificates conformant"
        )
        console.print(_counts_table("Groups by Class", "Class", report.classification_counts))

    except JanusError as exc:
        err_console.print(f"Audit failed: {exc}")
        raise typer.Exit(1)
    except Exception as exc:
        err_console.print(f"Audit failed: {exc}")
        logger.exception("CLI audit command failed")
        raise typer.Exit(1)


# ---------------------------------------------------------------------------
# Command: verify
# ---------------------------------------------------------------------------


@app.command("verify")
def verify(
    certificates: Path = CertificatesOption,
    brokers: Path = BrokersOption,
    schedules: Optional[Path] = SchedulesOption,
) -> None:
    """Run the pipeline and check its structural invariants."""
    try:
        pipeline, result = _load_and_run(certificates, brokers, schedules)
        report = pipeline.verify(result)
    except JanusError as exc:
        err_console.print(f"Verify failed: {exc}")
        raise typer.Exit(1)

    table = Table(title="Integrity Checks", box=box.ROUNDED)
    table.add_column("Check", style="cyan")
    table.add_column("Result", style="bold")
    table.add_column("Errors", justify="right")
    table.add_column("Warnings", justify="right")
    for check in report.checks_run:
        result_text = "[green]pass[/green]" if report.passed(check) else "[red]FAIL[/red]"
        table.add_row(
            check,
            result_text,
            str(report.check_errors[check]),
            str(report.check_warnings[check]),
        )
    console.print(table)

    _print_warnings(report.warnings)
    if report.errors:
        console.print(f"\n[bold red]Errors ({len(report.errors)}):[/bold red]")
        for error in report.errors[:20]:
            console.print(f"  [red]- {error}[/red]")
        raise typer.Exit(1)
    console.print("[green]All invariants hold.[/green]")


# ---------------------------------------------------------------------------
# Command: init-db
# ---------------------------------------------------------------------------


@app.command("init-db")
def init_db(
    database_url: Optional[str] = typer.Option(
        None, "--database-url", help="Override the staging database URL"
    ),
) -> None:
    """Create the staging tables."""
    from janus.store import SnapshotStore

    async def _create():
        store = SnapshotStore(database_url=database_url)
        try:
            await store.create_schema()
        finally:
            await store.close()

    try:
        asyncio.run(_create())
    except Exception as exc:
        err_console.print(f"Schema creation failed: {exc}")
        logger.exception("CLI init-db command failed")
        raise typer.Exit(1)
    console.print("[green]Staging schema ready.[/green]")


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    app()
