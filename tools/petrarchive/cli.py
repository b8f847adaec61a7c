"""CLI entry-point for the board archiver."""

from __future__ import annotations

import logging
import sys
from dataclasses import replace
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .config import ArchiveConfig, CrawlConfig, DatabaseConfig, SiteConfig
from .harvester import CatalogError, Harvester

console = Console()


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, console=console)],
    )
    # Suppress noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)
    logging.getLogger("PIL").setLevel(logging.WARNING)


def _print_stats(stats: dict) -> None:
    table = Table(title="Crawl Summary", show_header=True, header_style="bold cyan")
    table.add_column("Metric", style="bold")
    table.add_column("Count", justify="right")
    for key, val in stats.items():
        table.add_row(key.capitalize(), str(val))
    console.print(table)


@click.group()
@click.option("--db-host", envvar="DB_HOST", default="localhost", help="PostgreSQL host")
@click.option("--db-port", envvar="DB_PORT", default=5432, type=int, help="PostgreSQL port")
@click.option("--db-name", envvar="DB_NAME", default="petrarchive", help="PostgreSQL database name")
@click.option("--db-user", envvar="DB_USER", default="petrarchive", help="PostgreSQL user")
@click.option("--db-password", envvar="DB_PASSWORD", default="petrarchive", help="PostgreSQL password")
@click.option("--base-url", envvar="SITE_BASE_URL", default="https://petrarchan.com", help="Board base URL")
@click.option("--archive-dir", envvar="ARCHIVE_DIR", default="static/petrarchive",
              type=click.Path(file_okay=False, path_type=Path), help="Directory for images and thumbnails")
@click.option("--max-threads", envvar="MAX_THREADS", default=61, type=int, help="Max threads scraped per run")
@click.option("--timezone", envvar="TZ_NAME", default="America/Detroit", help="Timezone for scheduled jobs")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, **kwargs: object) -> None:
    """Board archiver – incrementally mirror threads into PostgreSQL.

    Fetches the catalog, re-scrapes new or grown threads, stores posts and
    images, and keeps reply counts consistent with stored replies.
    """
    _setup_logging(bool(kwargs.pop("verbose")))
    ctx.ensure_object(dict)
    ctx.obj["cfg"] = CrawlConfig(
        site=SiteConfig(base_url=kwargs["base_url"]),  # type: ignore[arg-type]
        db=DatabaseConfig(
            host=kwargs["db_host"],  # type: ignore[arg-type]
            port=kwargs["db_port"],  # type: ignore[arg-type]
            dbname=kwargs["db_name"],  # type: ignore[arg-type]
            user=kwargs["db_user"],  # type: ignore[arg-type]
            password=kwargs["db_password"],  # type: ignore[arg-type]
        ),
        archive=ArchiveConfig(archive_dir=kwargs["archive_dir"]),  # type: ignore[arg-type]
        max_threads=kwargs["max_threads"],  # type: ignore[arg-type]
        timezone=kwargs["timezone"],  # type: ignore[arg-type]
    )


def _make_harvester(ctx: click.Context, *, images: bool = True) -> Harvester:
    cfg = replace(ctx.obj["cfg"], download_images=images)
    h = Harvester(cfg)
    h.db.ensure_schema()
    return h


# ─── Commands ────────────────────────────────────────────────────


@cli.command()
@click.option("--no-images", is_flag=True, help="Skip image downloads")
@click.pass_context
def crawl(ctx: click.Context, no_images: bool) -> None:
    """Run one incremental crawl now.

    Example: petrarchive crawl
    """
    with _make_harvester(ctx, images=not no_images) as h:
        try:
            stats = h.run(show_progress=True)
        except CatalogError as exc:
            console.print(f"[red]✗[/red] {exc}")
            sys.exit(1)
        if stats is not None:
            _print_stats(stats)


@cli.command()
@click.argument("thread_id")
@click.option("--no-images", is_flag=True, help="Skip image downloads")
@click.pass_context
def thread(ctx: click.Context, thread_id: str, no_images: bool) -> None:
    """Scrape a single thread, skipping posts already stored.

    Example: petrarchive thread 12345
    """
    with _make_harvester(ctx, images=not no_images) as h:
        h.storage.ensure_root()
        known_ids = h.db.get_post_ids()
        console.print(f"[bold]Scraping thread [cyan]{thread_id}[/cyan]...[/bold]")
        if h.harvest_threads([thread_id], known_ids) == 0:
            console.print(f"[red]✗[/red] Thread {thread_id} could not be scraped")
            sys.exit(1)
        console.print(f"[green]✓[/green] Thread {thread_id} scraped")
        _print_stats(h.stats)


@cli.command()
@click.pass_context
def audit(ctx: click.Context) -> None:
    """Recount replies for every stored thread and fix mismatches."""
    from .audit import audit_reply_counts

    with _make_harvester(ctx, images=False) as h:
        corrected = audit_reply_counts(h.db)
        console.print(f"[green]✓[/green] Corrected {corrected} reply counts")


@cli.command()
@click.option("--force", is_flag=True, help="Rebuild thumbnails that already exist")
@click.pass_context
def thumbnails(ctx: click.Context, force: bool) -> None:
    """Generate thumbnails for downloaded images."""
    from .storage import DiskStorageService

    storage = DiskStorageService(ctx.obj["cfg"].archive)
    processed, errors = storage.regenerate_thumbnails(force=force)
    console.print(f"[green]✓[/green] {processed} thumbnails written, {errors} errors")
    if errors:
        sys.exit(1)


@cli.command(name="preview")
@click.option("--limit", default=10, type=int, help="Number of threads to show")
@click.pass_context
def preview(ctx: click.Context, limit: int) -> None:
    """Preview the catalog without importing.

    Example: petrarchive preview --limit 5
    """
    from .api import SiteClient
    from .parser import parse_catalog

    with SiteClient(ctx.obj["cfg"].site) as api:
        fetched = api.get_catalog()
        if fetched is None:
            console.print("[red]✗[/red] Catalog not found")
            sys.exit(1)
        table = Table(title="Catalog Preview", show_header=True, header_style="bold cyan")
        table.add_column("Thread", style="bold", justify="right")
        table.add_column("Replies", justify="right")
        for t in parse_catalog(fetched[0])[:limit]:
            table.add_row(t.id, str(t.observed_reply_count))
        console.print(table)


@cli.command()
@click.pass_context
def schedule(ctx: click.Context) -> None:
    """Run the crawl on its twice-daily schedule until interrupted."""
    from .scheduler import build_scheduler, crawl_jobs

    cfg: CrawlConfig = ctx.obj["cfg"]
    with _make_harvester(ctx) as h:
        scheduler = build_scheduler(crawl_jobs(h.run), cfg.timezone)
        console.print(f"[bold]Scheduler started ({cfg.timezone})[/bold]")
        try:
            scheduler.start()
        except (KeyboardInterrupt, SystemExit):
            console.print("Scheduler stopped")


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
