"""Terminal client for Cake Genie."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from cakegenie.application.dtos.pricing_dto import CompressionInfo, PriceResult
from cakegenie.application.state import EstimateState, Event, Listener, OperationState
from cakegenie.domain.entities.source_file import SourceFile
from cakegenie.domain.errors import CakeGenieError
from cakegenie.infrastructure.cli.dependencies import build_session, get_compression_service, get_poller
from cakegenie.infrastructure.database.supabase_client import get_supabase_health, is_disabled

console = Console()
app = typer.Typer(help="Upload a cake photo and get a price estimate.")

_STYLES = {
    OperationState.IDLE: "dim",
    OperationState.UPLOADING: "cyan",
    OperationState.PROCESSING: "magenta",
    OperationState.COMPLETE: "green",
    OperationState.ERROR: "red",
}


def _status_printer() -> Listener:
    last: dict[str, str | None] = {"message": None, "error": None}

    def render(event: Event, state: EstimateState) -> None:
        if state.message and state.message != last["message"]:
            style = _STYLES[state.operation]
            console.print(f"[dim]{state.operation.value:>10}[/dim] [{style}]{state.message}[/{style}]")
        if state.error and state.error != last["error"]:
            console.print(f"[red]{state.error}[/red]")
        last["message"] = state.message
        last["error"] = state.error

    return render


def _compression_panel(info: CompressionInfo) -> Panel:
    lines = [f"Size: {info.summary()}", f"Format: {info.ext}"]
    if info.width and info.height:
        lines.append(f"Dimensions: {info.width}x{info.height}")
    if info.error:
        lines.append(f"[yellow]Compression skipped: {info.error}[/yellow]")
    return Panel("\n".join(lines), title="[bold cyan]Compression", border_style="cyan")


def _price_table(result: PriceResult) -> Table:
    table = Table(title="Price Estimate", show_edge=False, header_style="bold cyan")
    table.add_column("Field")
    table.add_column("Value")
    table.add_row("Price add-on", result.price_addon)
    table.add_row("Design details", result.cake_design_details)
    table.add_row("Cake type", result.cake_type)
    table.add_row("Height", result.height)
    if result.row_id:
        table.add_row("Row ID", result.row_id)
    if result.public_url:
        table.add_row("Image", result.public_url)
    return table


async def _estimate(path: Path, wait: bool) -> int:
    session = build_session()
    session.subscribe(_status_printer())
    try:
        item = await session.submit(SourceFile.from_path(path))
        state = session.state
        if state.compression is not None:
            console.print(_compression_panel(state.compression))
        if state.gallery is None:
            return 1

        if not wait:
            if item is None or item.record is None:
                return 1
            console.print(f"[green]Uploaded:[/green] {item.record.public_url}")
            console.print(f"[bold]Row ID:[/bold] {item.record.row_id}")
            console.print("[dim]Use `cakegenie refresh <row_id>` to check the price later.[/dim]")
            return 0

        result = await session.calculate_price()
        if result is not None:
            console.print(_price_table(result))
            if result.needs_refresh:
                console.print("[dim]Use `cakegenie refresh <row_id>` to check again.[/dim]")
        return 1 if session.state.operation is OperationState.ERROR else 0
    finally:
        await session.close()


@app.command()
def estimate(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True, help="Cake photo to price"),
    wait: bool = typer.Option(True, "--wait/--no-wait", help="Wait for the AI to price the photo."),
) -> None:
    """Upload a cake photo and wait for its price estimate."""
    raise typer.Exit(asyncio.run(_estimate(path, wait)))


@app.command()
def refresh(
    row_id: str = typer.Argument(..., help="Row ID printed by `estimate`"),
) -> None:
    """Check once whether a pricing row has been filled in."""
    try:
        result = asyncio.run(get_poller().refresh(row_id))
    except CakeGenieError as exc:
        console.print(f"[red]Failed to refresh pricing. Please try again.[/red] [dim]{exc}[/dim]")
        raise typer.Exit(1) from exc
    if result is None:
        console.print("[yellow]Pricing data not ready yet. Please try again in a few seconds.[/yellow]")
        raise typer.Exit(1)
    console.print(_price_table(result))


@app.command()
def compress(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write the compressed artifact here."),
) -> None:
    """Run only the compression step and show its metrics."""
    result = get_compression_service().compress_sync(SourceFile.from_path(path))
    console.print(_compression_panel(CompressionInfo.from_result(result)))
    if output is not None:
        if output.suffix.lstrip(".").lower() != result.ext:
            output = output.with_suffix(f".{result.ext}")
        output.write_bytes(result.data)
        console.print(f"[green]Saved:[/green] {output}")


@app.command()
def health() -> None:
    """Show the Supabase configuration health report."""
    if is_disabled():
        console.print("[yellow]Supabase disabled: using local storage and in-memory pricing table.[/yellow]")
        return
    report = get_supabase_health()
    table = Table(title="Supabase", show_edge=False, header_style="bold cyan")
    table.add_column("Check")
    table.add_column("Value")
    table.add_row("URL", report.url)
    table.add_row("Config valid", "[green]yes[/green]" if report.is_valid else "[red]no[/red]")
    table.add_row("Client initialized", "yes" if report.has_client else "no")
    console.print(table)
    for error in report.errors:
        console.print(f"[red] - {error}[/red]")
    if not report.is_valid:
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
