"""
PageFeed Command Line Interface
===============================

Usage:
    pagefeed --help                  # Show all commands
    pagefeed run                     # Update every configured feed
    pagefeed run --output ./feeds    # Write feeds to another directory
    pagefeed check-config            # Validate the feeds file
    pagefeed cache                   # Show remembered HTTP validators
"""

import sys
import asyncio
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.table import Table

from . import __version__
from .config.feeds import FeedsFile, load_feeds_file
from .config.settings import PageFeedSettings, default_config_path, get_settings
from .database.connection import DatabaseConnection
from .database.schema import DatabaseSchema
from .processing.fetcher import PageFetcher
from .processing.pipeline import FeedOrchestrator, FeedState, RunSummary
from .storage.cache_repository import CacheStore
from .storage.output_repository import OutputLedger
from .utils.exceptions import DatabaseError, PageFeedError, get_user_friendly_message
from .utils.logging import configure_application_logging
from .utils.process_lock import output_dir_lock

console = Console()

STATE_STYLES = {
    FeedState.WRITTEN: "[green]✅ written[/green]",
    FeedState.SKIPPED: "[cyan]⏭ skipped[/cyan]",
    FeedState.FAILED: "[red]❌ failed[/red]",
}


def _fail(message: str) -> None:
    console.print(f"[bold red]❌ {message}[/bold red]")
    sys.exit(1)


def _setup(ctx) -> PageFeedSettings:
    """Load settings and configure logging once per invocation."""
    settings = get_settings()
    configure_application_logging(
        log_level="DEBUG" if ctx.obj.get("debug") else settings.get_effective_log_level(),
        log_file=settings.logging.file_path,
        enable_console=settings.logging.console_logging,
        structured_logging=settings.logging.structured_logging,
    )
    return settings


def _load_feeds(ctx) -> FeedsFile:
    return load_feeds_file(ctx.obj.get("config_path") or default_config_path())


def resolve_output_dir(
    cli_output: Optional[Path], feeds_file: FeedsFile, settings: PageFeedSettings
) -> Path:
    """Command line beats the feeds file, which beats the settings."""
    if cli_output is not None:
        return Path(cli_output).expanduser()
    if feeds_file.pagefeed.output_path is not None:
        return feeds_file.pagefeed.output_path
    return Path(settings.output_dir).expanduser()


def _open_database(settings: PageFeedSettings) -> DatabaseConnection:
    schema = DatabaseSchema(settings.cache.path)
    schema.create_tables()
    if not schema.verify_schema():
        raise DatabaseError(f"Cache database {settings.cache.path} is missing tables")
    return DatabaseConnection(settings.cache.path, pool_size=settings.cache.pool_size)


def _print_summary(summary: RunSummary) -> None:
    table = Table(title="Feed Run")
    table.add_column("Feed", style="cyan")
    table.add_column("Status")
    table.add_column("Items", justify="right")
    table.add_column("Details")

    for result in summary.results:
        table.add_row(
            result.filename,
            STATE_STYLES[result.state],
            str(result.item_count) if result.state != FeedState.FAILED else "-",
            result.reason,
        )

    console.print(table)
    console.print(
        f"{summary.written} written, {summary.skipped} skipped, "
        f"{summary.failed} failed in {summary.duration_seconds:.2f}s"
    )


@click.group(invoke_without_command=True)
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Feeds file path (default: $XDG_CONFIG_HOME/pagefeed/feeds.toml)",
)
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.version_option(__version__, prog_name="pagefeed")
@click.pass_context
def cli(ctx, config_path, debug):
    """PageFeed - generate RSS feeds from web pages."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["debug"] = debug

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@cli.command()
@click.option(
    "--output",
    "-o",
    type=click.Path(file_okay=False, path_type=Path),
    help="Directory to write feeds to",
)
@click.pass_context
def run(ctx, output):
    """Fetch every configured page and update its feed."""
    try:
        settings = _setup(ctx)
        feeds_file = _load_feeds(ctx)
    except PageFeedError as e:
        _fail(get_user_friendly_message(e))

    if not feeds_file.feeds:
        console.print("[yellow]⚠️ No feeds configured[/yellow]")
        sys.exit(0)

    output_dir = resolve_output_dir(output, feeds_file, settings)
    lock = output_dir_lock(output_dir)
    if not lock.acquire():
        pid = lock.get_lock_holder_pid()
        holder = f" (PID: {pid})" if pid else ""
        _fail(f"Another run is already writing to {output_dir}{holder}")

    db = None
    try:
        db = _open_database(settings)
        fetcher = PageFetcher(
            settings,
            proxy=feeds_file.pagefeed.proxy,
            file_urls=feeds_file.pagefeed.file_urls or None,
        )
        orchestrator = FeedOrchestrator(
            CacheStore(db),
            OutputLedger(db),
            output_dir,
            settings=settings,
            fetcher=fetcher,
        )
        summary = asyncio.run(orchestrator.run(feeds_file.feeds))
    except PageFeedError as e:
        _fail(get_user_friendly_message(e))
    finally:
        if db is not None:
            db.close_all_connections()
        lock.release()

    _print_summary(summary)
    sys.exit(0 if summary.ok else 1)


@cli.command("check-config")
@click.pass_context
def check_config(ctx):
    """Validate the feeds file and list the configured feeds."""
    try:
        settings = _setup(ctx)
        feeds_file = _load_feeds(ctx)
    except PageFeedError as e:
        _fail(get_user_friendly_message(e))

    table = Table(title="Configured Feeds")
    table.add_column("Title", style="cyan")
    table.add_column("Filename")
    table.add_column("URL")
    table.add_column("Item / Heading / Link")

    seen = set()
    duplicates = []
    for definition in feeds_file.feeds:
        rule = definition.config
        filename = definition.filename
        if filename in seen:
            duplicates.append(filename)
            filename = f"[red]{filename} (duplicate)[/red]"
        seen.add(definition.filename)
        table.add_row(
            definition.title,
            filename,
            rule.url,
            f"{rule.item} / {rule.heading} / {rule.link or '(heading)'}",
        )

    console.print(table)
    output_dir = resolve_output_dir(None, feeds_file, settings)
    console.print(f"Output directory: {output_dir}")

    if duplicates:
        _fail(f"Duplicate output filenames: {', '.join(sorted(set(duplicates)))}")

    console.print("[bold green]✅ Configuration is valid[/bold green]")


@cli.command()
@click.option("--clear", "clear_urls", multiple=True, help="Forget validators for URL")
@click.pass_context
def cache(ctx, clear_urls):
    """Show the HTTP validators remembered for each source URL."""
    db = None
    try:
        settings = _setup(ctx)
        db = _open_database(settings)
        store = CacheStore(db)

        for url in clear_urls:
            if store.delete(url):
                console.print(f"Cleared {url}")
            else:
                console.print(f"[yellow]No cache record for {url}[/yellow]")

        records = store.all_records()
        info = db.get_database_info()
    except PageFeedError as e:
        _fail(get_user_friendly_message(e))
    finally:
        if db is not None:
            db.close_all_connections()

    table = Table(title=f"Cache ({settings.cache.path})")
    table.add_column("URL", style="cyan")
    table.add_column("ETag")
    table.add_column("Last-Modified")
    table.add_column("Fingerprint")
    table.add_column("Checked")

    for record in records:
        table.add_row(
            record.url,
            record.etag or "-",
            record.last_modified.isoformat() if record.last_modified else "-",
            record.content_fingerprint[:12],
            record.checked_at.isoformat(timespec="seconds"),
        )

    console.print(table)
    counts = info["table_counts"]
    console.print(
        f"{counts['cache_records']} cached pages, "
        f"{counts['output_records']} written feeds, "
        f"{info['database_size_kb']:.1f} KB"
    )


def main() -> None:
    try:
        cli()
    except KeyboardInterrupt:
        console.print("\n[yellow]👋 PageFeed interrupted by user[/yellow]")
        sys.exit(130)
