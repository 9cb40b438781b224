"""Takeoff CLI - async import commands.

Commands:
- init: Initialize database schema
- seed-templates: Insert default progress templates
- preview: Map and validate a takeoff file without importing
- import: Import a CSV/XLSX takeoff (legacy raw-file path)
- import-payload: Import a structured JSON payload
- stats: Show project statistics
- import-runs: Show recent import runs
- web serve: Run the HTTP API
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table
from sqlalchemy import func, select

from takeoff.config import get_config
from takeoff.core.logging import configure_logging
from takeoff.db.connection import close_db, get_session, init_db
from takeoff.db.models import (
    AreaModel,
    ComponentModel,
    DrawingModel,
    ImportRunModel,
    SystemModel,
    TestPackageModel,
)
from takeoff.errors import TakeoffImportError
from takeoff.ingestion.metadata_analyzer import build_preview
from takeoff.ingestion.reader import read_takeoff_file
from takeoff.pipeline.orchestrator import TakeoffImportOrchestrator
from takeoff.pipeline.templates import load_template_specs, seed_templates
from takeoff.pipeline.types import ImportResult

app = typer.Typer(
    name="takeoff",
    help="Takeoff import - identity-resolved component imports from BOM spreadsheets",
    no_args_is_help=True,
)
web_cli = typer.Typer(help="HTTP API")
app.add_typer(web_cli, name="web")

console = Console()


@app.callback()
def main_callback():
    configure_logging()


def _run(coro):
    """Run a command coroutine and release the engine afterwards."""

    async def _wrapped():
        try:
            return await coro
        finally:
            await close_db()

    return asyncio.run(_wrapped())


def _print_result(result: ImportResult) -> None:
    if result.success:
        console.print(f"[bold green]✓[/bold green] Import finished in {result.duration_ms}ms")
    else:
        console.print(f"[bold red]✗[/bold red] Import failed: {result.error}")
        for detail in result.details[:20]:
            where = f" ({detail.drawing})" if detail.drawing else ""
            console.print(f"    row {detail.row}{where}: {detail.issue}", style="dim")
        if len(result.details) > 20:
            console.print(f"    ... and {len(result.details) - 20} more", style="dim")

    table = Table(title="Import Result")
    table.add_column("Metric", style="cyan")
    table.add_column("Count", justify="right", style="green")
    table.add_row("Components created", str(result.components_created))
    table.add_row("Components updated", str(result.components_updated))
    table.add_row("Components skipped", str(result.components_skipped))
    table.add_row("Drawings created", str(result.drawings_created))
    table.add_row("Drawings reused", str(result.drawings_reused))
    table.add_row("Areas created", str(result.metadata_created.areas))
    table.add_row("Systems created", str(result.metadata_created.systems))
    table.add_row("Test packages created", str(result.metadata_created.test_packages))
    for component_type, count in sorted(result.components_by_type.items()):
        table.add_row(f"  {component_type}", str(count))
    console.print(table)

    if result.warnings:
        console.print(f"[yellow]⚠[/yellow] {len(result.warnings)} rows skipped")
        for warning in result.warnings[:5]:
            console.print(f"    row {warning.row}: {warning.issue}", style="dim")


@app.command()
def init(
    drop: bool = typer.Option(False, "--drop", help="Drop existing tables"),
):
    """Initialize database schema."""
    config = get_config()
    console.print(f"[bold]Initializing database:[/bold] {config.db.url}")
    if drop:
        console.print("[yellow]Dropping existing tables...[/yellow]")

    _run(init_db(drop=drop))
    console.print("[bold green]✓[/bold green] Database initialized")


@app.command(name="seed-templates")
def seed_templates_cmd(
    config_path: Path | None = typer.Option(None, "--config", help="Template YAML file"),
):
    """Insert default progress templates (existing versions are kept)."""

    async def _seed():
        specs = load_template_specs(config_path)
        async with get_session() as session:
            return await seed_templates(session, specs)

    inserted = _run(_seed())
    console.print(f"[bold green]✓[/bold green] {inserted} templates inserted")


@app.command()
def preview(
    file: Path = typer.Argument(..., help="Takeoff file (CSV/XLSX)"),
):
    """Map columns and validate rows without importing."""
    try:
        table = read_takeoff_file(file)
        result = build_preview(
            table.headers, table.records, file.name, table.size_bytes, get_config().imports
        )
    except (FileNotFoundError, ValueError, TakeoffImportError) as e:
        console.print(f"[red]✗[/red] {e}")
        raise typer.Exit(code=1)

    mapping_table = Table(title="Column Mapping")
    mapping_table.add_column("Source column", style="cyan")
    mapping_table.add_column("Field")
    mapping_table.add_column("Confidence", justify="right")
    for mapping in result.mapping.mappings:
        mapping_table.add_row(mapping.source_column, mapping.canonical_field.value, f"{mapping.confidence}%")
    console.print(mapping_table)

    if result.mapping.unmapped_columns:
        console.print(f"Unmapped columns: {', '.join(result.mapping.unmapped_columns)}", style="dim")
    if result.mapping.missing_required_fields:
        missing = ", ".join(f.value for f in result.mapping.missing_required_fields)
        console.print(f"[red]Missing required columns:[/red] {missing}")

    validation = result.validation
    console.print(
        f"Rows: {validation.total_rows} total, [green]{validation.valid_count} valid[/green], "
        f"[yellow]{validation.skipped_count} skipped[/yellow], [red]{validation.error_count} errors[/red]"
    )
    for detail in validation.error_details()[:20]:
        console.print(f"    row {detail.row}: {detail.issue}", style="dim")

    counts = Table(title="Components to create")
    counts.add_column("Type", style="cyan")
    counts.add_column("Count", justify="right", style="green")
    for component_type, count in sorted(result.component_counts.items()):
        counts.add_row(component_type, str(count))
    console.print(counts)

    if result.can_import:
        console.print("[bold green]✓[/bold green] Ready to import")
    else:
        console.print("[bold red]✗[/bold red] Fix the errors above before importing")
        raise typer.Exit(code=1)


@app.command(name="import")
def import_cmd(
    file: Path = typer.Argument(..., help="Takeoff file (CSV/XLSX)"),
    project_id: str = typer.Option(..., "--project", help="Project ID"),
):
    """Import a takeoff file (parse -> validate -> import)."""
    if not file.exists():
        console.print(f"[red]✗[/red] File not found: {file}")
        raise typer.Exit(code=1)

    console.print(f"[bold]Importing takeoff:[/bold] {file} -> project={project_id}")

    async def _import():
        orchestrator = TakeoffImportOrchestrator()
        return await orchestrator.import_file(project_id, file.read_bytes(), file.name)

    result = _run(_import())
    _print_result(result)
    if not result.success:
        raise typer.Exit(code=1)


@app.command(name="import-payload")
def import_payload_cmd(
    file: Path = typer.Argument(..., help="JSON payload file"),
):
    """Import a structured JSON payload."""
    if not file.exists():
        console.print(f"[red]✗[/red] File not found: {file}")
        raise typer.Exit(code=1)

    async def _import():
        orchestrator = TakeoffImportOrchestrator()
        return await orchestrator.run_payload(file.read_bytes())

    result = _run(_import())
    _print_result(result)
    if not result.success:
        raise typer.Exit(code=1)


@app.command()
def stats(
    project_id: str = typer.Option(..., "--project", help="Project ID"),
):
    """Show project statistics."""
    console.print(f"[bold]Project Statistics:[/bold] project={project_id}")

    async def _stats():
        async with get_session() as session:
            by_type = await session.execute(
                select(ComponentModel.component_type, func.count())
                .where(
                    ComponentModel.project_id == project_id,
                    ComponentModel.is_retired == False,  # noqa: E712
                )
                .group_by(ComponentModel.component_type)
                .order_by(ComponentModel.component_type)
            )
            component_rows = by_type.all()

            counts = {}
            for label, model in (
                ("Drawings", DrawingModel),
                ("Areas", AreaModel),
                ("Systems", SystemModel),
                ("Test packages", TestPackageModel),
            ):
                result = await session.execute(
                    select(func.count()).select_from(model).where(model.project_id == project_id)
                )
                counts[label] = result.scalar_one()
            return component_rows, counts

    component_rows, counts = _run(_stats())

    table = Table(title="Statistics")
    table.add_column("Metric", style="cyan")
    table.add_column("Count", justify="right", style="green")
    for label, count in counts.items():
        table.add_row(label, str(count))
    total = 0
    for component_type, count in component_rows:
        table.add_row(f"Components: {component_type}", str(count))
        total += count
    table.add_row("Components (total)", str(total))
    console.print(table)


@app.command(name="import-runs")
def import_runs_cmd(
    project_id: str | None = typer.Option(None, "--project", help="Project ID"),
    last_n: int = typer.Option(5, "--last", "-n", help="Show last N import runs"),
):
    """Show recent import runs."""

    async def _runs():
        async with get_session() as session:
            stmt = select(ImportRunModel).order_by(ImportRunModel.started_at.desc()).limit(last_n)
            if project_id:
                stmt = stmt.where(ImportRunModel.project_id == project_id)
            result = await session.execute(stmt)
            return result.scalars().all()

    runs = _run(_runs())
    if not runs:
        console.print("[yellow]No import runs found[/yellow]")
        return

    table = Table(title=f"Last {len(runs)} Import Runs")
    table.add_column("Started", style="cyan")
    table.add_column("Project")
    table.add_column("Source")
    table.add_column("Status")
    table.add_column("Created", justify="right")
    table.add_column("Updated", justify="right")
    table.add_column("Skipped", justify="right")
    table.add_column("Error", style="dim")
    for run in runs:
        status = "[green]SUCCESS[/green]" if run.status == "SUCCESS" else "[red]FAILED[/red]"
        table.add_row(
            run.started_at.strftime("%Y-%m-%d %H:%M:%S"),
            run.project_id,
            run.source,
            status,
            str(run.components_created),
            str(run.components_updated),
            str(run.components_skipped),
            run.error_message or "",
        )
    console.print(table)


@web_cli.command("serve")
def web_serve(
    host: str = typer.Option("0.0.0.0", help="Host to bind"),
    port: int = typer.Option(8001, help="Port to bind"),
    reload: bool = typer.Option(False, help="Enable autoreload (dev only)"),
):
    """Run the FastAPI import API."""
    import uvicorn

    typer.echo(f"Starting takeoff import API on http://{host}:{port}")
    uvicorn.run("takeoff.web.app:app", host=host, port=port, reload=reload, workers=1)


def main():
    """Entry point for CLI."""
    app()


if __name__ == "__main__":
    main()
