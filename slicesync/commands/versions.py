"""Versions command: list known manifests of a product."""

from __future__ import annotations

import sys

import click
from rich.table import Table

from slicesync.commands._shared import get_context_objects, output_json
from slicesync.core.errors import VersionLookupError
from slicesync.core.types import ManifestVersion
from slicesync.core.versions import VersionCatalog


@click.command()
@click.argument("product_id", type=int)
@click.argument("manifest_hash", type=str, required=False)
@click.pass_context
def versions(ctx: click.Context, product_id: int, manifest_hash: str | None) -> None:
    """List known manifest versions of PRODUCT_ID.

    With MANIFEST_HASH, show only the catalog entry for that manifest.
    """
    config, console, _verbose, _debug = get_context_objects(ctx)

    try:
        with VersionCatalog(config.versions_url) as catalog:
            if manifest_hash:
                found = catalog.find(product_id, manifest_hash)
                entries: list[ManifestVersion] = [found] if found else []
            else:
                entries = catalog.list_versions(product_id)
    except VersionLookupError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)

    if manifest_hash and not entries:
        console.print(f"[yellow]Manifest {manifest_hash} is not listed for product {product_id}[/yellow]")
        sys.exit(1)

    if config.output_format == "json":
        output_json({"product_id": product_id, "versions": [v.model_dump() for v in entries]})
        return

    if manifest_hash:
        console.print(entries[0].display_name())
        return

    table = Table(title=f"Versions of product {product_id}")
    table.add_column("Released", style="cyan")
    table.add_column("Version", style="green")
    table.add_column("Description")
    table.add_column("Manifest", style="magenta")
    for v in entries:
        table.add_row(
            (v.release_date or "")[:10],
            v.community_semver or "",
            v.community_description or "",
            v.manifest,
        )
    console.print(table)
