"""Cache command group: manage downloaded manifest blobs."""

from __future__ import annotations

import click

from slicesync.commands._shared import get_context_objects, output_json
from slicesync.core.cache import ManifestCache


@click.group("cache", short_help="Manage the manifest cache.")
def cache_group() -> None:
    """Manage manifest blobs cached by downloads."""
    pass


@cache_group.command("clear")
@click.pass_context
def clear_cache(ctx: click.Context) -> None:
    """Delete every cached manifest blob."""
    config, console, _verbose, _debug = get_context_objects(ctx)

    removed = ManifestCache(config.cache_dir).clear()

    if config.output_format == "json":
        output_json({"removed": removed, "cache_dir": str(config.cache_dir)})
    else:
        console.print(f"[green]Removed {removed} cached manifests[/green]")
