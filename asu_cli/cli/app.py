"""
Defines the command-line interface for the application using Typer.
"""

import asyncio
import logging
import os
from pathlib import Path
from typing import Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler

from asu_cli import __version__
from asu_cli.api.client import AsuAPIClient
from asu_cli.artifacts import ChecksumDownloader
from asu_cli.artifacts.integrity import verify_build_output
from asu_cli.core.orchestrator import BuildOrchestrator
from asu_cli.exceptions import AsuCliError, ConfigurationError
from asu_cli.models.config import BuildConfig
from asu_cli.models.stats import BuildStats
from asu_cli.storage.config_manager import ConfigManager
from asu_cli.utils.path import prepare_output_dir
from asu_cli.utils.structured_logger import create_task_logger

from .formatters import (
    format_error_with_suggestions,
    print_config,
    print_summary_panel,
    print_validation_table,
    print_verify_table,
)
from .progress_manager import StatusBoard

console = Console()

logging.basicConfig(
    level="WARNING",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[
        RichHandler(
            console=console,
            rich_tracebacks=True,
            show_path=False,
            show_level=False,
            markup=True,
        )
    ],
)
log = logging.getLogger("asu_cli")

app = typer.Typer(
    name="asu-cli",
    help=(
        "Build custom OpenWrt images for several devices in parallel through the"
        " Attended SysUpgrade service. Use 'asu-cli <command> --help' for more info."
    ),
    rich_markup_mode="rich",
    pretty_exceptions_show_locals=False,
    add_completion=False,
)


def get_config_dir() -> Path:
    if os.name == "nt":
        base_dir = Path(os.getenv("APPDATA", "~\\AppData\\Roaming"))
    else:
        base_dir = Path(os.getenv("XDG_CONFIG_HOME", "~/.config"))
    return base_dir.expanduser() / "asu-cli"


CONFIG_DIR = get_config_dir()
CONFIG_FILE = CONFIG_DIR / "config.ini"


def _config_file(ctx: typer.Context) -> Path:
    return (ctx.obj or {}).get("config_file", CONFIG_FILE)


def _fail(error: Exception) -> None:
    console.print(format_error_with_suggestions(error))
    raise typer.Exit(code=1) from error


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    verbose: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Increase logging verbosity (-v for info, -vv for debug).",
    ),
    version: bool = typer.Option(
        False, "--version", help="Show version and exit.", is_eager=True
    ),
    config_file: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Use this configuration file instead of the default one.",
    ),
    show_config: bool = typer.Option(
        False, "--show-config", help="Display the current configuration."
    ),
):
    """ASU build client CLI"""
    if version:
        console.print(f"[bold]asu-cli[/bold] version [cyan]{__version__}[/cyan]")
        raise typer.Exit()

    log_level = "WARNING"
    if verbose == 1:
        log_level = "INFO"
    elif verbose >= 2:
        log_level = "DEBUG"
    logging.getLogger("asu_cli").setLevel(log_level)

    ctx.obj = {"config_file": config_file or CONFIG_FILE}

    if show_config:
        path = _config_file(ctx)
        if not path.is_file():
            console.print(
                "[red]✗ Config file not found.[/] Run [cyan]asu-cli init[/cyan]"
                " first."
            )
            raise typer.Exit(code=1)
        print_config(path, path.read_text(encoding="utf-8"), console=console)
        raise typer.Exit()

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


@app.command()
def init(
    ctx: typer.Context,
    force: bool = typer.Option(
        False, "--force", "-f", help="Overwrite an existing configuration without asking."
    ),
    server: Optional[str] = typer.Option(
        None, "--server", help="Build service URL to store in the configuration."
    ),
    release: Optional[str] = typer.Option(
        None, "--release", "-r", help="OpenWrt release to store in the configuration."
    ),
):
    """Write a configuration file with the default devices and packages."""
    config_file = _config_file(ctx)
    if (
        config_file.exists()
        and not force
        and not typer.confirm("Configuration file already exists. Overwrite it?")
    ):
        raise typer.Abort()

    settings = {
        key: value
        for key, value in {"server": server, "version": release}.items()
        if value is not None
    }
    try:
        ConfigManager(config_file).save_new_config(settings)
    except AsuCliError as e:
        _fail(e)
    console.print(f"[bold green]✓ Configuration saved to '{config_file}'[/bold green]")
    console.print("Edit the device sections, then run: [cyan]asu-cli build[/cyan]")


def _load_config(ctx: typer.Context, cli_options: Optional[dict] = None) -> BuildConfig:
    return ConfigManager(_config_file(ctx)).load_config(cli_options)


async def _build_async(config: BuildConfig) -> tuple[int, BuildStats]:
    task_logger = create_task_logger(Path(config.log_dir) if config.log_dir else None)
    client = AsuAPIClient(config.server, max_connections=len(config.devices) * 2)
    try:
        downloader = ChecksumDownloader(await client.session())
        devices = [(d.target, d.profile) for d in config.devices]
        async with StatusBoard(console, devices) as board:
            orchestrator = BuildOrchestrator(
                config, client, downloader, board=board, task_logger=task_logger
            )
            exit_code = await orchestrator.run()
    finally:
        await client.close()
        task_logger.close()
    return exit_code, orchestrator.stats


@app.command(name="build")
def build_command(
    ctx: typer.Context,
    devices: Optional[list[str]] = typer.Option(  # noqa: B008
        None,
        "--device",
        "-d",
        help="Only build this device (profile or target/profile). Repeatable.",
    ),
    server: Optional[str] = typer.Option(None, "--server", help="Build service URL."),
    release: Optional[str] = typer.Option(
        None, "--release", "-r", help="OpenWrt release to build."
    ),
    output_dir: Optional[str] = typer.Option(
        None, "--output-dir", "-o", help="Directory for images and metadata."
    ),
    clean: bool = typer.Option(
        False, "--clean", help="Remove a non-empty output directory before building."
    ),
    log_dir: Optional[Path] = typer.Option(
        None, "--log-dir", help="Also write a JSON-lines event log to this directory."
    ),
):
    """Build and download images for every configured device."""
    cli_options = {
        key: value
        for key, value in {
            "server": server,
            "version": release,
            "output_dir": output_dir,
            "clean": clean,
            "log_dir": str(log_dir) if log_dir else None,
        }.items()
        if value is not None
    }

    try:
        config = _load_config(ctx, cli_options)
        if devices:
            try:
                config = config.select_devices(devices)
            except ValueError as e:
                raise ConfigurationError(str(e)) from e
        prepare_output_dir(Path(config.output_dir), clean=config.clean)
    except AsuCliError as e:
        _fail(e)

    exit_code, stats = asyncio.run(_build_async(config))
    print_summary_panel(stats, console=console)
    raise typer.Exit(code=exit_code)


@app.command()
def defconfig(ctx: typer.Context):
    """Print the package list as OpenWrt defconfig lines."""
    try:
        config = _load_config(ctx)
    except AsuCliError as e:
        _fail(e)
    for line in config.defconfig_lines():
        typer.echo(line)


@app.command()
def validate(ctx: typer.Context):
    """Validate the current configuration."""
    try:
        config = _load_config(ctx)
        print_validation_table(config, console=console)
    except AsuCliError as e:
        console.print(f"[red]✗ Configuration is invalid: {e}[/red]")
        raise typer.Exit(code=1) from e


@app.command()
def verify(
    ctx: typer.Context,
    directory: Optional[Path] = typer.Argument(
        None, help="Output directory to check (defaults to the configured one)."
    ),
):
    """Re-check downloaded images against their saved build metadata."""
    if directory is None:
        try:
            directory = Path(_load_config(ctx).output_dir)
        except AsuCliError as e:
            _fail(e)

    metadata_files = sorted(directory.glob("*.json")) if directory.is_dir() else []
    if not metadata_files:
        console.print(f"[yellow]⚠️  No build metadata found in '{directory}'.[/yellow]")
        raise typer.Exit(code=1)

    results = {}
    for path in metadata_files:
        try:
            results[path.name] = verify_build_output(path)
        except (OSError, ValidationError) as e:
            log.debug(f"Could not read '{path}'", exc_info=True)
            console.print(f"[red]✗ Could not read '{path.name}': {e}[/red]")
            raise typer.Exit(code=1) from e

    print_verify_table(results, console=console)
    if not all(ok for images in results.values() for ok in images.values()):
        console.print("[bold red]✗ Some images failed verification.[/bold red]")
        raise typer.Exit(code=1)
    console.print("[bold green]✓ All images verified.[/bold green]")
