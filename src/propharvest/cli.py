"""Command-line interface for PropHarvest."""

from __future__ import annotations

import asyncio
import contextlib
import json
import signal
import sys
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import click
from rich.console import Console
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
    TimeRemainingColumn,
)
from rich.table import Table

from propharvest import __version__
from propharvest.config.config import Config, load_config
from propharvest.observability import configure_logging
from propharvest.protocols import PageResult
from propharvest.service import HarvestService

console = Console()


def _load(ctx: click.Context) -> Config:
    config = load_config(ctx.obj["config_path"])
    if ctx.obj["log_level"]:
        config.monitoring.log_level = ctx.obj["log_level"]
    configure_logging(config.monitoring)
    return config


def _fail(result: Dict[str, Any]) -> None:
    console.print(f"[red]❌ {result['message']}: {result.get('error', '')}[/red]")
    sys.exit(1)


def interrupt_handler(service: HarvestService) -> Callable[[], None]:
    """SIGINT handler for a scrape: cancel the running range, or interrupt when none is running."""

    def handle() -> None:
        if service.cancel():
            console.print("[yellow]Cancelling: waiting for in-flight pages to settle...[/yellow]")
            return
        raise KeyboardInterrupt

    return handle


@click.group()
@click.version_option(version=__version__)
@click.option("--config", "-c", type=click.Path(exists=True, dir_okay=False), help="Configuration file path")
@click.option(
    "--log-level",
    default=None,
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]),
    help="Logging level (overrides the configuration file)",
)
@click.pass_context
def cli(ctx: click.Context, config: Optional[str], log_level: Optional[str]) -> None:
    """PropHarvest - paginated property listing harvester."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = Path(config) if config else None
    ctx.obj["log_level"] = log_level


@cli.command()
@click.option("--host", default=None, help="Host to bind to (default from config)")
@click.option("--port", default=None, type=int, help="Port to bind to (default from config)")
@click.pass_context
def serve(ctx: click.Context, host: Optional[str], port: Optional[int]) -> None:
    """Start the HTTP API."""
    from propharvest.web.main import run_web_server

    config = _load(ctx)
    host = host or config.monitoring.web_ui.host
    port = port or config.monitoring.web_ui.port
    console.print(f"[green]🚀 Starting PropHarvest API at http://{host}:{port}[/green]")
    run_web_server(host=host, port=port, config=config)


@cli.command()
@click.option("--start", "start_page", default=1, type=click.IntRange(min=1), help="First page to scrape")
@click.option("--end", "end_page", default=None, type=int, help="Last page to scrape (default: every page)")
@click.option("--batch-size", default=None, type=click.IntRange(min=1), help="Pages per batch")
@click.option("--concurrency", default=None, type=click.IntRange(min=1), help="Initial concurrency")
@click.pass_context
def scrape(
    ctx: click.Context,
    start_page: int,
    end_page: Optional[int],
    batch_size: Optional[int],
    concurrency: Optional[int],
) -> None:
    """Scrape a page range and write the JSON artifact."""
    config = _load(ctx)
    overrides: Dict[str, Any] = {}
    if batch_size is not None:
        overrides["batch_size"] = batch_size
    if concurrency is not None:
        overrides["initial_concurrency"] = concurrency
    if overrides:
        config.scheduler = config.scheduler.model_copy(update=overrides)

    service = HarvestService(config)
    last_page = end_page if end_page is not None else service.total_pages
    total = max(0, last_page - start_page + 1)

    console.print(
        Panel.fit(
            f"[bold blue]PropHarvest scrape[/bold blue]\n"
            f"Pages: {start_page}-{last_page}\n"
            f"Batch size: {config.scheduler.batch_size}\n"
            f"Initial concurrency: {config.scheduler.initial_concurrency}",
            title="Starting Scrape",
        )
    )

    progress = Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        TextColumn("[red]{task.fields[failed]} failed"),
        TimeElapsedColumn(),
        TimeRemainingColumn(),
        console=console,
    )

    async def run_scrape() -> Dict[str, Any]:
        loop = asyncio.get_running_loop()
        # Ctrl+C during a range stops dispatching and the artifact is still written; otherwise it interrupts.
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(signal.SIGINT, interrupt_handler(service))

        with progress:
            task = progress.add_task("Scraping pages", total=total, failed=0)
            failed = 0

            def on_page(result: PageResult) -> None:
                nonlocal failed
                if not result.succeeded:
                    failed += 1
                progress.update(task, advance=1, failed=failed)

            return await service.start_scrape(start_page, last_page, on_page=on_page)

    result = asyncio.run(run_scrape())
    if not result["success"]:
        _fail(result)

    performance = result["performance"]
    console.print(
        Panel(
            f"{'⚠️  Scrape cancelled' if result['cancelled'] else '✅ Scrape completed'}\n"
            f"Properties: {result['totalProperties']}\n"
            f"Pages succeeded: {result['pagesSucceeded']}\n"
            f"Pages failed: {result['pagesFailed']}\n"
            f"Pages empty: {result['pagesEmpty']}\n"
            f"Average per page: {result['summary']['averagePerPage']}\n"
            f"Duration: {performance['elapsedSeconds']:.2f}s ({performance['rate']})\n"
            f"Output: {result['jsonFile']}",
            title="Results",
            border_style="yellow" if result["cancelled"] else "green",
        )
    )


@cli.command("fetch-page")
@click.argument("page_no", type=click.IntRange(min=1))
@click.option("--json", "as_json", is_flag=True, help="Print the raw JSON result")
@click.pass_context
def fetch_page(ctx: click.Context, page_no: int, as_json: bool) -> None:
    """Fetch, checkpoint and extract a single page."""
    service = HarvestService(_load(ctx))
    result = asyncio.run(service.fetch_single_page(page_no))
    if not result["success"]:
        _fail(result)

    if as_json:
        console.print_json(json.dumps(result, ensure_ascii=False))
        return

    table = Table(title=f"Page {page_no} ({result['status']}, {result['count']} properties)")
    for column in ("slNo", "pid", "ward", "mohalla", "chkNo", "houseNo", "ownerName", "mobile"):
        table.add_column(column)
    for record in result["properties"]:
        table.add_row(*(record[column] for column in record if column != "viewDetailsLink"))
    console.print(table)


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show checkpoint coverage of the dataset."""
    result = HarvestService(_load(ctx)).status()
    if not result["success"]:
        _fail(result)

    table = Table(title="Checkpoint Status")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="magenta")
    table.add_row("Total pages", str(result["totalPages"]))
    table.add_row("Completed pages", str(result["completedPages"]))
    table.add_row("Remaining", str(result["remaining"]))
    table.add_row("Progress", f"{result['progress']}%")
    console.print(table)


@cli.command()
@click.option("--output-dir", "-o", type=click.Path(file_okay=False), help="Directory for the combined artifact")
@click.pass_context
def combine(ctx: click.Context, output_dir: Optional[str]) -> None:
    """Rebuild the dataset from checkpointed pages without network access."""
    service = HarvestService(_load(ctx))
    result = asyncio.run(service.combine_pages(Path(output_dir) if output_dir else None))
    if not result["success"]:
        _fail(result)
    console.print(
        f"[green]✅ Combined {result['totalProperties']} properties "
        f"from {result['filesProcessed']} pages into {result['jsonFile']}[/green]"
    )


def main() -> None:
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
