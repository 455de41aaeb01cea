"""
Command-line interface for kchoo.

Provides commands to initialize the schema, register sites and sources,
run the refresh scheduler, and inspect queue state.

Usage:
    kchoo init-db                    # Create tables
    kchoo add-site twitter           # Register a site
    kchoo add-source twitter 12345   # Register a source
    kchoo claim twitter --count 10   # Claim sources to populate (JSON lines)
    kchoo finish 1 2 3 --label initial
    kchoo mark-errors 4 5
    kchoo refresh                    # Run the refresh scheduler
    kchoo status                     # Source counts per state
    kchoo pending-images             # Images waiting for storage
    kchoo health                     # Check database connectivity
"""

import asyncio
import json
import signal
import sys
from collections.abc import Awaitable, Callable
from typing import Any

import click

from kchoo.config.settings import get_settings
from kchoo.observability.logging import setup_logging
from kchoo.observability.metrics import get_metrics
from kchoo.storage.errors import StoreError


def _run_with_database(fn: Callable[[Any], Awaitable[None]]) -> None:
    """Open a Database, run ``fn(db)``, always close it.

    Store errors become a non-zero exit with the message on stderr.
    """
    from kchoo.storage.database import Database

    async def run():
        db = Database()
        await db.connect()
        try:
            await fn(db)
        finally:
            await db.close()

    try:
        asyncio.run(run())
    except StoreError as e:
        click.echo(click.style(f"{type(e).__name__}: {e}", fg="red"), err=True)
        sys.exit(1)


def _echo_json(payload: dict[str, Any]) -> None:
    click.echo(json.dumps(payload, default=str))


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
def main(debug: bool) -> None:
    """kchoo - work queue for source and image ingestion."""
    setup_logging("DEBUG" if debug else None)

    settings = get_settings()
    if settings.tracing_enabled:
        from kchoo.observability.tracing import setup_tracing

        setup_tracing(
            service_name=settings.otel_service_name,
            otlp_endpoint=settings.otel_exporter_otlp_endpoint,
        )


@main.command("init-db")
def init_db() -> None:
    """Initialize the database schema."""
    from kchoo.sources.repository import SourcesRepository

    async def run(db):
        await SourcesRepository(db).create_tables()
        click.echo("Database initialized successfully")

    _run_with_database(run)


@main.command("add-site")
@click.argument("name")
def add_site(name: str) -> None:
    """Register a site (idempotent)."""
    from kchoo.sources.repository import SourcesRepository

    async def run(db):
        site_id = await SourcesRepository(db).register_site(name)
        click.echo(f"Site {name} has id {site_id}")

    _run_with_database(run)


@main.command("add-source")
@click.argument("site")
@click.argument("remote_identifier")
def add_source(site: str, remote_identifier: str) -> None:
    """Register a new source in the pending state."""
    from kchoo.sources.repository import SourcesRepository

    async def run(db):
        source_id = await SourcesRepository(db).create_source(site, remote_identifier)
        click.echo(f"Created source {source_id}")

    _run_with_database(run)


@main.command()
@click.argument("site")
@click.option("--count", default=None, type=int, help="Sources to claim (default from config)")
def claim(site: str, count: int | None) -> None:
    """Claim sources to populate and print them as JSON lines."""
    from kchoo.sources.repository import SourcesRepository

    async def run(db):
        claims = await SourcesRepository(db).claim_sources_to_populate(site, count)
        for c in claims:
            _echo_json({
                "id": c.id,
                "remote_identifier": c.remote_identifier,
                "earliest_marker": c.earliest_marker,
            })

    _run_with_database(run)


@main.command()
@click.argument("ids", nargs=-1, type=int)
@click.option("--label", required=True, help="Action label, e.g. initial or refresh")
def finish(ids: tuple[int, ...], label: str) -> None:
    """Settle claimed sources into standby."""
    from kchoo.sources.repository import SourcesRepository

    async def run(db):
        summary = await SourcesRepository(db).finish_processing(ids, label)
        click.echo(f"{label}: {summary.affected}/{summary.requested} sources settled")

    _run_with_database(run)


@main.command("mark-errors")
@click.argument("ids", nargs=-1, type=int)
def mark_errors(ids: tuple[int, ...]) -> None:
    """Move sources to the error state."""
    from kchoo.sources.repository import SourcesRepository

    async def run(db):
        summary = await SourcesRepository(db).mark_errors(ids)
        click.echo(f"{summary.affected}/{summary.requested} sources marked as errored")

    _run_with_database(run)


@main.command()
@click.option("--once", is_flag=True, help="Run a single sweep and exit")
@click.option("--interval", default=None, type=float, help="Seconds between sweeps")
@click.option("--metrics/--no-metrics", default=True, help="Enable metrics server")
@click.option("--metrics-port", default=None, type=int, help="Metrics server port")
def refresh(
    once: bool,
    interval: float | None,
    metrics: bool,
    metrics_port: int | None,
) -> None:
    """Claim standby sources for refreshing and print them as JSON lines.

    Every sweep moves all standby sources to refreshing and only prints
    them. This command never finishes a source: pipe its output into a
    worker that refreshes each one and then runs `kchoo finish IDS --label
    refresh` or `kchoo mark-errors IDS`. Without that worker a looping
    refresh empties standby after the first sweep, and the claimed sources
    stay in refreshing.
    """
    from kchoo.refresh.config import RefreshConfig
    from kchoo.refresh.scheduler import RefreshScheduler
    from kchoo.sources.repository import SourcesRepository

    async def emit(claims):
        for c in claims:
            _echo_json({
                "id": c.id,
                "remote_identifier": c.remote_identifier,
                "latest_marker": c.latest_marker,
                "last_refreshed_at": c.last_refreshed_at,
            })

    async def run(db):
        config = RefreshConfig()
        if interval is not None:
            config = config.model_copy(update={"interval_seconds": interval})
        scheduler = RefreshScheduler(SourcesRepository(db), emit, config)

        if once:
            await scheduler.run_once()
            return

        if metrics:
            get_metrics().start_server(port=metrics_port)

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, lambda: asyncio.create_task(scheduler.stop()))

        await scheduler.start()

    _run_with_database(run)


@main.command()
@click.option("--site", default=None, help="Restrict counts to one site")
def status(site: str | None) -> None:
    """Show source counts per state and pending image count."""
    from kchoo.images.repository import ImagesRepository
    from kchoo.sources.repository import SourcesRepository

    async def run(db):
        counts = await SourcesRepository(db).count_by_state(site)
        pending = await ImagesRepository(db).count_pending_storage()

        title = f"Sources ({site})" if site else "Sources"
        click.echo(f"\n{title}:")
        click.echo("-" * 40)
        for state, n in counts.items():
            click.echo(f"  {state.value:<12} {n:>8}")
        click.echo("-" * 40)
        click.echo(f"  {'total':<12} {sum(counts.values()):>8}")
        click.echo(f"\nImages pending storage: {pending}")

    _run_with_database(run)


@main.command("pending-images")
@click.option("--claim", "claim_count", default=None, type=int,
              help="Lease this many images instead of listing all")
def pending_images(claim_count: int | None) -> None:
    """Print images without a stored location as JSON lines."""
    from kchoo.images.repository import ImagesRepository

    async def run(db):
        repo = ImagesRepository(db)
        if claim_count is None:
            images = await repo.list_images_pending_storage()
        else:
            images = await repo.claim_images_pending_storage(claim_count)
        for image in images:
            _echo_json({
                "id": image.id,
                "source_id": image.source_id,
                "source_url": image.source_url,
            })

    _run_with_database(run)


@main.command()
def health() -> None:
    """Check database connectivity."""
    import structlog
    logger = structlog.get_logger()

    async def check():
        from kchoo.storage.database import Database

        db = Database()
        try:
            await db.connect()
            healthy = await db.health_check()
        except StoreError as e:
            logger.error("Postgres health check failed", error=str(e))
            healthy = False
        finally:
            await db.close()
        return healthy

    healthy = asyncio.run(check())

    icon = "✓" if healthy else "✗"
    color = "green" if healthy else "red"
    click.echo(click.style(f"  {icon} postgres: {healthy}", fg=color))
    sys.exit(0 if healthy else 1)


if __name__ == "__main__":
    main()
