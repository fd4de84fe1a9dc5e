"""Main entry point for slicesync CLI."""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Any

import click
import structlog
from rich.console import Console

from slicesync import __version__
from slicesync.commands.cache import cache_group
from slicesync.commands.diff import diff
from slicesync.commands.download import download
from slicesync.commands.verify import verify
from slicesync.commands.versions import versions
from slicesync.core.config import AppConfig


class _StderrHandler(logging.StreamHandler):  # type: ignore[type-arg]
    """Stream handler bound to whatever ``sys.stderr`` is at emit time."""

    @property
    def stream(self):  # type: ignore[override]
        return sys.stderr

    @stream.setter
    def stream(self, value) -> None:
        pass


def configure_logging(level: str = "WARNING", colors: bool = False) -> None:
    """Configure structured logging and apply the stdlib log level.

    Args:
        level: Minimum level emitted (DEBUG, INFO, WARNING, ...)
        colors: Colorize console output
    """
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(colors=colors),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    root = logging.getLogger()
    if not any(isinstance(h, _StderrHandler) for h in root.handlers):
        root.addHandler(_StderrHandler())
    root.setLevel(level)


configure_logging()
logger = structlog.get_logger()


@click.group()
@click.version_option(version=__version__, prog_name="slicesync")
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, path_type=Path),
    help="Configuration file path",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.option("--debug", "-d", is_flag=True, help="Enable debug output")
@click.option(
    "--output",
    "-o",
    type=click.Choice(["rich", "json", "plain"], case_sensitive=False),
    default="rich",
    help="Output format",
)
@click.pass_context
def main(
    ctx: click.Context,
    config: Path | None,
    verbose: bool,
    debug: bool,
    output: str,
) -> None:
    """Incremental installer for content-addressed slice stores."""
    ctx.ensure_object(dict)

    # Load configuration
    try:
        app_config = AppConfig.load(config)
    except Exception as e:
        logger.error("Failed to load configuration", error=str(e))
        sys.exit(1)

    # Override config with CLI options
    if verbose or debug:
        app_config.log_level = "DEBUG" if debug else "INFO"
    if output:
        app_config.output_format = output.lower()

    configure_logging(app_config.log_level, colors=debug)

    # Create console for rich output
    console = Console(
        force_terminal=output == "rich",
        no_color=output != "rich",
        width=None if output == "rich" else 120,
    )

    # Store config and console in context for subcommands
    ctx.obj["config"] = app_config
    ctx.obj["console"] = console
    ctx.obj["verbose"] = verbose or debug
    ctx.obj["debug"] = debug

    logger.debug("CLI initialized", config=app_config.model_dump(mode="json"))


# Register commands
main.add_command(cache_group)
main.add_command(diff)
main.add_command(download)
main.add_command(verify)
main.add_command(versions)


def handle_exception(exc_type: type[BaseException], exc_value: BaseException, exc_traceback: Any) -> None:
    """Handle uncaught exceptions."""
    if issubclass(exc_type, KeyboardInterrupt):
        logger.info("Operation cancelled by user")
        sys.exit(1)

    logger.error(
        "Uncaught exception",
        exc_info=(exc_type, exc_value, exc_traceback),
    )
    sys.exit(1)


def cli() -> None:
    """Console script entry point."""
    sys.excepthook = handle_exception
    main()


if __name__ == "__main__":
    cli()
