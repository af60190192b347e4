"""Dealflow CLI - serve the API and inspect pipelines from the terminal."""

from __future__ import annotations

import asyncio
import uuid

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .config import settings
from .engine.board import KanbanBoardController
from .engine.http_gateway import HTTPGateway
from .errors import DealflowError
from .fields.registry import FieldSchemaRegistry

app = typer.Typer(
    name="dealflow",
    help="Sales pipeline engine - API server and board tools",
    no_args_is_help=True,
)
console = Console()

TokenOption = typer.Option(None, "--token", envvar="DEALFLOW_TOKEN", help="Location access token")
BaseUrlOption = typer.Option(None, "--base-url", help="API base URL (defaults to DEALFLOW_API_BASE_URL)")


def _gateway(slug: str, base_url: str | None, token: str | None) -> HTTPGateway:
    return HTTPGateway(slug, base_url=base_url, token=token)


def _fail(message: str) -> None:
    console.print(f"[red]{message}[/red]")
    raise typer.Exit(1)


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", help="Bind address"),
    port: int = typer.Option(8020, help="Port"),
    reload: bool = typer.Option(False, help="Reload on code changes"),
):
    """Run the pipeline API with uvicorn."""
    import uvicorn

    uvicorn.run(
        "dealflow.app:app",
        host=host,
        port=port,
        reload=reload,
        log_level=settings.log_level.lower(),
    )


@app.command()
def board(
    slug: str = typer.Argument(..., help="Location slug"),
    pipeline_id: uuid.UUID = typer.Argument(..., help="Pipeline ID"),
    page_size: int = typer.Option(None, "--page-size", help="Cards loaded per column"),
    token: str = TokenOption,
    base_url: str = BaseUrlOption,
):
    """Show every column of a pipeline with its counts and totals."""

    async def _run():
        async with _gateway(slug, base_url, token) as gateway:
            controller = KanbanBoardController(gateway, pipeline_id, page_size=page_size)
            loaded = await controller.load()
            return controller, loaded

    controller, loaded = asyncio.run(_run())
    if controller.pipeline is None:
        _fail(controller.notices.notices[-1].message if controller.notices.notices else "Load failed")

    table = Table(title=f"Pipeline: {controller.pipeline.name}")
    table.add_column("Stage", style="cyan")
    table.add_column("Prob.", justify="right")
    table.add_column("Loaded", justify="right")
    table.add_column("Total", justify="right")
    table.add_column("Value", justify="right", style="green")
    table.add_column("Stagnant", justify="right", style="yellow")

    for column in controller.columns.values():
        stage = column.stage
        name = stage.name
        if stage.is_won:
            name += " [green](won)[/green]"
        elif stage.is_lost:
            name += " [red](lost)[/red]"
        probability = "-" if stage.probability_percent is None else f"{stage.probability_percent:g}%"
        stagnant = sum(1 for item in column.items if controller.metrics(item).is_stagnant)
        more = "+" if column.has_more else ""
        table.add_row(
            name,
            probability,
            f"{len(column.items)}{more}",
            str(column.total_count),
            f"{column.total_value:,.2f}",
            str(stagnant),
        )
    console.print(table)

    if not loaded:
        for notice in controller.notices.notices:
            console.print(f"[yellow]{notice.message}[/yellow]")


@app.command()
def fields(
    slug: str = typer.Argument(..., help="Location slug"),
    pipeline_id: uuid.UUID = typer.Argument(..., help="Pipeline ID"),
    token: str = TokenOption,
    base_url: str = BaseUrlOption,
):
    """List a pipeline's custom field definitions by group."""

    async def _run():
        async with _gateway(slug, base_url, token) as gateway:
            registry = FieldSchemaRegistry(gateway)
            return await registry.grouped(pipeline_id)

    try:
        groups = asyncio.run(_run())
    except DealflowError as e:
        _fail(e.message)

    if not groups:
        console.print("[yellow]No custom fields defined.[/yellow]")
        return

    for group, definitions in groups:
        table = Table(title=group)
        table.add_column("Name", style="cyan")
        table.add_column("Label")
        table.add_column("Type", style="magenta")
        table.add_column("Required", justify="center")
        table.add_column("Kanban", justify="center")
        for definition in definitions:
            table.add_row(
                definition.name,
                definition.label,
                definition.field_type.value,
                "yes" if definition.required else "",
                "yes" if definition.visible_in_kanban else "",
            )
        console.print(table)


@app.command()
def move(
    slug: str = typer.Argument(..., help="Location slug"),
    opportunity_id: uuid.UUID = typer.Argument(..., help="Opportunity ID"),
    stage_id: uuid.UUID = typer.Argument(..., help="Destination stage ID"),
    expected_version: int = typer.Option(None, "--expected-version", help="Refuse if the version differs"),
    token: str = TokenOption,
    base_url: str = BaseUrlOption,
):
    """Move an opportunity to another stage."""

    async def _run():
        async with _gateway(slug, base_url, token) as gateway:
            return await gateway.move_opportunity(
                opportunity_id, stage_id, expected_version=expected_version
            )

    try:
        opp = asyncio.run(_run())
    except DealflowError as e:
        _fail(f"Move failed: {e.message}")

    weighted = "-" if opp.weighted_value is None else f"{opp.weighted_value:,.2f}"
    console.print(
        Panel(
            f"[bold]{opp.name}[/bold]\n"
            f"Stage: {opp.stage_id}\n"
            f"Status: {opp.status}\n"
            f"Weighted value: {weighted}\n"
            f"Version: {opp.version}",
            title="Moved",
        )
    )


@app.command()
def version():
    """Show version information."""
    from . import __version__

    console.print(f"dealflow v{__version__}")


if __name__ == "__main__":
    app()
