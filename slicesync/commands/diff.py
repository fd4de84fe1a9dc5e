"""Diff command: compare two local manifest files."""

from __future__ import annotations

import sys
from pathlib import Path

import click
from rich.table import Table

from slicesync.commands._shared import get_context_objects, output_json
from slicesync.core.diff import diff_manifests
from slicesync.core.utils import format_size
from slicesync.formats.manifest import ManifestParser


@click.command()
@click.argument("target", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("previous", type=click.Path(exists=True, dir_okay=False, path_type=Path), required=False)
@click.pass_context
def diff(ctx: click.Context, target: Path, previous: Path | None) -> None:
    """List the files TARGET needs when PREVIOUS is installed.

    Without PREVIOUS every file of TARGET is listed (fresh install).
    """
    config, console, verbose, _debug = get_context_objects(ctx)
    parser = ManifestParser()

    try:
        target_manifest = parser.parse_file(target)
        previous_manifest = parser.parse_file(previous) if previous else None
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)

    delta = diff_manifests(target_manifest, previous_manifest)

    if config.output_format == "json":
        output_json({
            "files": [f.name for f in delta.selected],
            "new": delta.new_count,
            "changed": delta.changed_count,
            "unchanged": delta.unchanged_count,
            "obsolete": delta.obsolete,
            "download_size": delta.download_size,
            "total_size": target_manifest.total_size,
        })
        return

    table = Table(title=f"Files to download ({len(delta.selected)})")
    table.add_column("File", style="cyan")
    table.add_column("Size", style="magenta", justify="right")
    table.add_column("Slices", style="green", justify="right")
    for f in delta.selected:
        table.add_row(f.name, format_size(f.size), str(len(f.slices)))
    console.print(table)

    console.print(
        f"{delta.new_count} new, {delta.changed_count} changed, "
        f"{delta.unchanged_count} unchanged, {format_size(delta.download_size)} to download "
        f"of {format_size(target_manifest.total_size)}"
    )
    if verbose and delta.obsolete:
        console.print("[yellow]No longer in target:[/yellow]")
        for name in delta.obsolete:
            console.print(f"  {name}")
