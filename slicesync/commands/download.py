"""Download command: bring an install up to a target manifest."""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

import click
import structlog
from rich.console import Console
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table

from slicesync.commands._shared import (
    build_fetcher,
    build_install,
    get_context_objects,
    output_json,
    run_cancellable,
)
from slicesync.core.diff import ManifestDiff
from slicesync.core.downloader import DownloadReport
from slicesync.core.errors import FatalSyncError, OperationCancelled
from slicesync.core.session import SyncSession
from slicesync.core.utils import format_size, validate_hash_string

logger = structlog.get_logger()


def _show_plan(delta: ManifestDiff, console: Console) -> None:
    table = Table(title="Download Plan")
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="magenta")
    table.add_row("New files", str(delta.new_count))
    table.add_row("Changed files", str(delta.changed_count))
    table.add_row("Unchanged files", str(delta.unchanged_count))
    table.add_row("Obsolete files", str(len(delta.obsolete)))
    table.add_row("Download size", format_size(delta.download_size))
    console.print(table)


def _show_report(report: DownloadReport, console: Console) -> None:
    console.print(
        f"[green]Downloaded {len(report.succeeded)} files "
        f"({format_size(report.bytes_written)})[/green]"
    )
    if report.failed:
        table = Table(title="Failed Files")
        table.add_column("File", style="cyan")
        table.add_column("Error", style="red")
        for result in report.failed:
            table.add_row(result.name, result.error or "")
        console.print(table)


@click.command()
@click.argument("product_id", type=int)
@click.argument("manifest_hash", type=str)
@click.option(
    "--install-path", "-p",
    type=click.Path(file_okay=False, path_type=Path),
    help="Install root (default: registered location or prompt)"
)
@click.option(
    "--base-url",
    type=str,
    help="Slice store base URL (overrides configuration)"
)
@click.option(
    "--concurrency", "-j",
    type=click.IntRange(min=1),
    help="Files downloaded concurrently"
)
@click.option(
    "--verify-slices",
    is_flag=True,
    default=False,
    help="Check each slice hash before writing it"
)
@click.option(
    "--dry-run",
    is_flag=True,
    default=False,
    help="Show which files would be downloaded"
)
@click.pass_context
def download(
    ctx: click.Context,
    product_id: int,
    manifest_hash: str,
    install_path: Path | None,
    base_url: str | None,
    concurrency: int | None,
    verify_slices: bool,
    dry_run: bool,
) -> None:
    """Download or update PRODUCT_ID to MANIFEST_HASH."""
    config, console, _verbose, _debug = get_context_objects(ctx)

    if not validate_hash_string(manifest_hash):
        console.print(f"[red]Invalid manifest hash: {manifest_hash}[/red]")
        sys.exit(1)

    if base_url:
        config.signing.base_url = base_url.rstrip("/")
    if concurrency:
        config.download.max_concurrency = concurrency

    install = build_install(config, product_id, install_path)

    async def _run(cancel_event: asyncio.Event) -> ManifestDiff | DownloadReport:
        async with build_fetcher(config, product_id) as fetcher:
            session = SyncSession(
                install, fetcher, manifest_hash,
                config=config, cancel_event=cancel_event,
            )
            if dry_run:
                return await session.plan()

            if config.output_format != "rich":
                return await session.download(verify_slices=verify_slices)

            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                BarColumn(),
                MofNCompleteColumn(),
                TaskProgressColumn(),
                TimeElapsedColumn(),
                console=console,
            ) as progress:
                task = progress.add_task("Downloading files...", total=None)

                def on_progress(completed: int, total: int) -> None:
                    progress.update(task, completed=completed, total=total)

                return await session.download(progress=on_progress, verify_slices=verify_slices)

    try:
        outcome = run_cancellable(_run)
    except OperationCancelled as e:
        console.print(f"[yellow]Download cancelled: {e}[/yellow]")
        sys.exit(130)
    except FatalSyncError as e:
        logger.error("download_failed", error=str(e))
        console.print(f"[red]Download failed: {e}[/red]")
        sys.exit(1)

    if isinstance(outcome, ManifestDiff):
        if config.output_format == "json":
            output_json({
                "files": [f.name for f in outcome.selected],
                "new": outcome.new_count,
                "changed": outcome.changed_count,
                "unchanged": outcome.unchanged_count,
                "obsolete": outcome.obsolete,
                "download_size": outcome.download_size,
            })
        else:
            _show_plan(outcome, console)
        return

    if config.output_format == "json":
        output_json({
            "already_installed": outcome.already_installed,
            "succeeded": outcome.succeeded,
            "failed": {r.name: r.error for r in outcome.failed},
            "bytes_written": outcome.bytes_written,
        })
    elif outcome.already_installed:
        console.print("[green]This version is already installed.[/green]")
    else:
        _show_report(outcome, console)

    if not outcome.ok:
        sys.exit(2)
