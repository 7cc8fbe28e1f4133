"""Command-line entry point for seer."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Any

import click
import yaml
from rich.console import Console
from rich.logging import RichHandler

from seer import __version__
from seer.app import App
from seer.config import SeerConfig, load_config, validate_config
from seer.models.result import CleanupError
from seer.reporters.terminal import reporter
from seer.runners.go_test import GoTestRunner, RunError
from seer.watchers.file_watcher import WatcherError

logger = logging.getLogger(__name__)

_LOG_FORMAT = "%(name)s: %(message)s"


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format=_LOG_FORMAT,
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _load_checked_config(path: str, log_level: str | None) -> SeerConfig:
    config = load_config(path)
    if log_level:
        config.logging.level = log_level.upper()

    errors = validate_config(config)
    if errors:
        for error in errors:
            reporter.print_error(error)
        raise click.ClickException("invalid configuration")

    _configure_logging(config.logging.level)
    return config


def _config_to_dict(config: SeerConfig) -> dict[str, Any]:
    """Convert SeerConfig to a plain dictionary for display."""
    result = asdict(config)
    result.pop("raw", None)
    result.pop("problems", None)
    result["watcher"]["source_suffixes"] = list(config.watcher.source_suffixes)
    return result


async def _run_until_signalled(app: App) -> None:
    loop = asyncio.get_running_loop()
    shutdown = asyncio.Event()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, shutdown.set)

    run_task = asyncio.create_task(app.run())
    shutdown_task = asyncio.create_task(shutdown.wait())

    done, _ = await asyncio.wait({run_task, shutdown_task}, return_when=asyncio.FIRST_COMPLETED)

    if shutdown_task in done:
        logger.info("Shut down message received")
        # cancels an in-flight ``go test`` as well as the batch loop
        run_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await run_task
    else:
        shutdown_task.cancel()

    await app.stop()

    if run_task.done() and not run_task.cancelled():
        run_task.result()


_path_option = click.option(
    "--path",
    default=".",
    show_default=True,
    type=click.Path(exists=True, file_okay=False),
    help="Go module root to watch.",
)

_log_level_option = click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], case_sensitive=False),
    default=None,
    help="Override the configured log level.",
)


@click.group()
@click.version_option(version=__version__, prog_name="seer")
def cli() -> None:
    """seer: re-run Go tests for the packages you change."""


@cli.command()
@_path_option
@_log_level_option
@click.option(
    "--interval",
    type=float,
    default=None,
    help="Seconds between change flushes (overrides watcher.flush_interval).",
)
def watch(path: str, log_level: str | None, interval: float | None) -> None:
    """Watch the source tree and re-run tests for changed packages.

    Examples:
        seer watch                    # Watch the current directory
        seer watch --path ./service   # Watch another module
        seer watch --interval 1.0     # Flush changes once a second
    """
    config = _load_checked_config(path, log_level)
    if interval is not None:
        if interval <= 0:
            raise click.BadParameter("must be positive", param_hint="--interval")
        config.watcher.flush_interval = interval

    reporter.console.print(f"[bold cyan]Watching[/bold cyan] {config.root}")
    reporter.print_info("Press Ctrl+C to stop")

    app = App(config, on_result=reporter.print_result)
    try:
        asyncio.run(_run_until_signalled(app))
    except WatcherError as exc:
        raise click.ClickException(f"failed to start watcher: {exc}") from exc

    reporter.console.print("[yellow]Watch mode stopped[/yellow]")


@cli.command()
@_path_option
@_log_level_option
@click.argument("packages", nargs=-1)
def run(path: str, log_level: str | None, packages: tuple[str, ...]) -> None:
    """Run the tests of PACKAGES once and print a summary.

    Exits with status 1 when any package fails.
    """
    config = _load_checked_config(path, log_level)
    runner = GoTestRunner(Path(config.root), config.runner)

    try:
        result = asyncio.run(runner.run(*packages))
    except RunError as exc:
        raise click.ClickException(str(exc)) from exc

    try:
        reporter.print_result(result)
    finally:
        try:
            result.close()
        except CleanupError as exc:
            logger.error("Failed to delete test results: %s", exc)

    if result.failed_packages or result.exit_code != 0:
        sys.exit(1)


@cli.group("config")
def config_group() -> None:
    """Inspect seer configuration."""


@config_group.command("show")
@_path_option
def config_show(path: str) -> None:
    """Print the effective configuration."""
    config = load_config(path)
    click.echo(yaml.safe_dump(_config_to_dict(config), sort_keys=False), nl=False)

    for error in validate_config(config):
        reporter.print_error(error)


if __name__ == "__main__":
    cli()
