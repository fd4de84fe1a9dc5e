"""Verify command: re-hash installed files against the installed manifest."""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

import click
import structlog
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
    build_install,
    get_context_objects,
    output_json,
    run_cancellable,
)
from slicesync.core.errors import FatalSyncError, OperationCancelled
from slicesync.core.session import SyncSession
from slicesync.core.verifier import VerifyResult

logger = structlog.get_logger()


@click.command()
@click.argument("product_id", type=int)
@click.option(
    "--install-path", "-p",
    type=click.Path(file_okay=False, path_type=Path),
    help="Install root (default: registered location or prompt)"
)
@click.option(
    "--concurrency", "-j",
    type=click.IntRange(min=1),
    help="Files verified concurrently"
)
@click.pass_context
def verify(
    ctx: click.Context,
    product_id: int,
    install_path: Path | None,
    concurrency: int | None,
) -> None:
    """Verify the installed files of PRODUCT_ID."""
    config, console, verbose, _debug = get_context_objects(ctx)

    if concurrency:
        config.verify.max_concurrency = concurrency

    install = build_install(config, product_id, install_path)

    async def _run(cancel_event: asyncio.Event) -> VerifyResult:
        session = SyncSession(install, config=config, cancel_event=cancel_event)
        if config.output_format != "rich":
            return await session.verify()

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            TaskProgressColumn(),
            TimeElapsedColumn(),
            console=console,
        ) as progress:
            task = progress.add_task("Verifying files...", total=None)

            def on_progress(completed: int, total: int) -> None:
                progress.update(task, completed=completed, total=total)

            return await session.verify(progress=on_progress)

    try:
        result = run_cancellable(_run)
    except OperationCancelled as e:
        console.print(f"[yellow]Verification cancelled: {e}[/yellow]")
        sys.exit(130)
    except FatalSyncError as e:
        logger.error("verify_failed", error=str(e))
        console.print(f"[red]Verification failed: {e}[/red]")
        sys.exit(1)

    if config.output_format == "json":
        output_json({
            "good_files": result.good_files,
            "bad_files": result.bad_files,
            "errors": result.errors,
        })
    else:
        console.print(
            f"Verified {result.total} files: "
            f"[green]{len(result.good_files)} good[/green], "
            f"[red]{len(result.bad_files)} bad[/red]"
        )
        if result.bad_files:
            table = Table(title="Bad Files")
            table.add_column("File", style="cyan")
            table.add_column("Reason", style="red")
            for name in result.bad_files:
                table.add_row(name, result.errors.get(name, ""))
            console.print(table)
        elif verbose:
            for name in result.good_files:
                console.print(f"  [green]ok[/green] {name}")

    if not result.is_clean:
        sys.exit(1)
