"""Helpers shared by the CLI commands."""

from __future__ import annotations

import asyncio
import json
import signal
from collections.abc import Callable, Coroutine
from pathlib import Path
from typing import Any, TypeVar

import click
from rich.console import Console

from slicesync.core.cache import ManifestCache
from slicesync.core.config import AppConfig
from slicesync.core.fetcher import SliceFetcher
from slicesync.core.install_state import GameInstall, InstallRegistry
from slicesync.core.signing import MirrorSigningService

T = TypeVar("T")


def get_context_objects(ctx: click.Context) -> tuple[AppConfig, Console, bool, bool]:
    """Extract common context objects."""
    config: AppConfig = ctx.obj["config"]
    console: Console = ctx.obj["console"]
    verbose: bool = ctx.obj["verbose"]
    debug: bool = ctx.obj["debug"]
    return config, console, verbose, debug


def output_json(data: dict[str, Any]) -> None:
    """Output data as JSON."""
    print(json.dumps(data, indent=2, default=str))


def prompt_location(product_id: int) -> str:
    """Ask the user where to install a product."""
    return click.prompt(f"Where would you like to install product {product_id}?", type=str)


def build_install(config: AppConfig, product_id: int, install_path: Path | None) -> GameInstall:
    """Install accessor backed by the configured registry."""
    return GameInstall(
        product_id,
        registry=InstallRegistry(config.registry_file),
        prompt=prompt_location,
        install_path=install_path,
    )


def build_fetcher(config: AppConfig, product_id: int) -> SliceFetcher:
    """Slice fetcher signing against the configured mirror."""
    signing = MirrorSigningService(
        config.signing.base_url,
        token_lifetime=config.signing.token_lifetime,
    )
    return SliceFetcher(
        product_id,
        signing,
        config=config.download,
        token_expiry_buffer=config.signing.token_expiry_buffer,
        cache=ManifestCache(config.cache_dir),
    )


def run_cancellable(factory: Callable[[asyncio.Event], Coroutine[Any, Any, T]]) -> T:
    """Run a coroutine, setting its cancel event on SIGINT."""

    async def _main() -> T:
        cancel_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        try:
            loop.add_signal_handler(signal.SIGINT, cancel_event.set)
        except (NotImplementedError, RuntimeError):
            pass  # Not supported on this platform
        try:
            return await factory(cancel_event)
        finally:
            try:
                loop.remove_signal_handler(signal.SIGINT)
            except (NotImplementedError, RuntimeError):
                pass

    return asyncio.run(_main())
