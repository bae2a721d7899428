#!/usr/bin/env python3

import asyncio
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table
from rich.panel import Panel

from jobpipe.orchestrator import Pipeline, build_pipeline
from jobpipe.utils.config import get_settings

app = typer.Typer(name="jobpipe", add_completion=False)
console = Console()


def _pipeline() -> Pipeline:
    return build_pipeline(get_settings())


def _outcome_table(outcomes) -> Table:
    table = Table(title="Scrape Results")
    table.add_column("Source", style="cyan")
    table.add_column("Status")
    table.add_column("Scraped", style="yellow", justify="right")
    table.add_column("New", style="green", justify="right")
    table.add_column("Updated", justify="right")
    table.add_column("Errors", style="red", justify="right")
    table.add_column("Duration", justify="right")

    for outcome in outcomes:
        table.add_row(
            outcome.source,
            "✅" if outcome.success else "❌",
            str(outcome.scraped),
            str(outcome.new),
            str(outcome.updated),
            str(len(outcome.errors)),
            f"{outcome.duration_seconds:.1f}s",
        )
    return table


@app.command()
def sources():
    """List the configured sources"""
    pipeline = _pipeline()

    table = Table(title="Sources")
    table.add_column("Name", style="cyan")
    table.add_column("Portal")
    table.add_column("Start URL", style="dim")
    table.add_column("Max Pages", justify="right")

    for name in pipeline.manager.available_sources():
        config = getattr(pipeline.manager.get_extractor(name), "config", None)
        table.add_row(
            name,
            config.portal if config else name,
            config.start_url if config else "",
            str(config.pagination.max_pages) if config else "",
        )
    console.print(table)


@app.command()
def scrape(
    source: Optional[str] = typer.Option(None, "--source", "-s", help="Source name, comma separated list or 'all'"),
    concurrent: int = typer.Option(0, "--concurrent", "-c", help="Run this many sources at a time"),
    cleanup_days: int = typer.Option(30, "--cleanup-days", help="Deactivate listings unseen for N days afterwards (0 = skip)"),
):
    """Scrape now, in the foreground"""
    console.print("\n🔍 [bold blue]Scraping Jobs...[/bold blue]\n")
    pipeline = _pipeline()
    manager = pipeline.manager

    names = None
    if source and source.lower() != "all":
        names = [name.strip().lower() for name in source.split(",") if name.strip()]

    async def run_scrape():
        if names and len(names) == 1 and not concurrent:
            return [await manager.run(names[0])]
        if concurrent:
            return await manager.run_concurrent(names, max_concurrent=concurrent)
        if names:
            return [await manager.run(name) for name in names]
        return await manager.run_all()

    outcomes = asyncio.run(run_scrape())
    console.print(_outcome_table(outcomes))

    for outcome in outcomes:
        for error in outcome.errors:
            console.print(f"  [red]{outcome.source}:[/red] {error}")

    total = sum(o.scraped for o in outcomes)
    new = sum(o.new for o in outcomes)
    console.print(f"\n[green]Total: {total} scraped, {new} new[/green]")

    if cleanup_days > 0:
        count = pipeline.repository.deactivate_stale(cleanup_days)
        console.print(f"[dim]Deactivated {count} listings not seen for {cleanup_days} days[/dim]")

    if outcomes and not any(o.success for o in outcomes):
        raise typer.Exit(code=1)


@app.command()
def cleanup(
    days_old: int = typer.Option(90, "--days-old", "-d", min=1, max=365),
):
    """Deactivate listings not seen for a while"""
    pipeline = _pipeline()
    count = pipeline.repository.deactivate_stale(days_old)
    console.print(f"🧹 Deactivated [yellow]{count}[/yellow] listings not seen for {days_old} days")


@app.command()
def status():
    """Show listing and scrape log statistics"""
    console.print("\n📊 [bold blue]jobpipe Status[/bold blue]\n")
    pipeline = _pipeline()
    stats = pipeline.db.get_listing_stats()

    stats_table = Table(title="Listings")
    stats_table.add_column("Metric", style="cyan")
    stats_table.add_column("Count", style="yellow", justify="right")
    stats_table.add_row("Total", str(stats["total"]))
    stats_table.add_row("Active", str(stats["active"]))
    stats_table.add_row("Inactive", str(stats["inactive"]))
    for name, count in sorted(stats["by_source"].items()):
        stats_table.add_row(f"  {name}", str(count))
    console.print(stats_table)

    logs = pipeline.db.get_recent_logs(limit=5)
    if logs:
        log_table = Table(title="\nRecent Runs")
        log_table.add_column("Finished", style="dim")
        log_table.add_column("Source", style="cyan")
        log_table.add_column("Status")
        log_table.add_column("Scraped", justify="right")
        log_table.add_column("New", justify="right")
        for record in logs:
            log_table.add_row(
                record["finishedAt"] or "",
                record["source"],
                "✅" if record["success"] else "❌",
                str(record["scraped"]),
                str(record["new"]),
            )
        console.print(log_table)

    console.print(Panel.fit(
        f"[cyan]Last update:[/cyan] {stats['last_update'] or 'never'}\n"
        f"[cyan]Database:[/cyan] {pipeline.db.db_path}",
        title="Store"
    ))


@app.command()
def run(
    scrape_now: bool = typer.Option(False, "--scrape-now", help="Queue a full scrape immediately"),
):
    """Run the queue worker and the scheduler in the foreground"""
    pipeline = _pipeline()

    async def run_forever():
        await pipeline.start()
        if scrape_now:
            pipeline.queue.enqueue("scraping", {"source": "all"})
        try:
            while True:
                await asyncio.sleep(1)
        finally:
            await pipeline.stop()

    console.print("\n⏰ [bold blue]Scheduler running[/bold blue] (Ctrl+C to stop)\n")
    for task in pipeline.scheduler.tasks.values():
        console.print(f"  {'✅' if task.enabled else '⏸️'} [cyan]{task.name}[/cyan] {task.schedule} - {task.description}")

    try:
        asyncio.run(run_forever())
    except KeyboardInterrupt:
        console.print("\n[yellow]Stopped[/yellow]")


@app.command()
def serve(
    port: Optional[int] = typer.Option(None, "--port", "-p"),
    host: Optional[str] = typer.Option(None, "--host"),
):
    """Serve the HTTP API (queue worker and scheduler included)"""
    import uvicorn

    settings = get_settings()
    host = host or settings.api.host
    port = port or settings.api.port
    console.print(f"\n🌐 [bold blue]API on http://{host}:{port}[/bold blue]\n")
    uvicorn.run("jobpipe.dashboard.app:create_app", factory=True, host=host, port=port)


@app.command()
def version():
    from jobpipe import __version__
    console.print(f"\n🚀 jobpipe v{__version__}\n")


if __name__ == "__main__":
    app()
