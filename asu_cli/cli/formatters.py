"""
Functions for formatting and displaying data in the console using Rich.
"""

from pathlib import Path
from typing import Any, Optional

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from asu_cli.models.config import BuildConfig
from asu_cli.models.stats import BuildStats
from asu_cli.utils.formatting import format_duration, format_size


def format_error_with_suggestions(
    error: Exception, context: Optional[dict] = None
) -> Panel:
    """Formats an error with actionable suggestions into a Rich Panel."""
    error_type = type(error).__name__
    error_msg = str(error)

    suggestions_map = {
        "ConfigurationError": [
            "• Run `asu-cli init` to create a default configuration.",
            "• Run `asu-cli validate` to see which setting is rejected.",
        ],
        "OutputExistsError": [
            "• Files from an earlier run are never overwritten.",
            "• Move the output directory away, or pass --clean to remove it.",
        ],
        "BuildRequestError": [
            "• Check your internet connection and the configured server URL.",
            "• The build service might be temporarily unavailable.",
        ],
        "BuildFailedError": [
            "• Check the target, profile and package names in your configuration.",
            "• Run `asu-cli defconfig` to review the requested packages.",
        ],
        "ChecksumMismatchError": [
            "• The image was corrupted in transit. Run the build again.",
        ],
        "ClientResponseError": [
            "• A network connection issue occurred.",
            "• Please try again in a few minutes.",
        ],
    }

    suggestions = suggestions_map.get(
        error_type, ["• Run the command with -vv for detailed logs."]
    )

    error_text = Text()
    error_text.append(f"{error_type}: ", style="bold red")
    error_text.append(error_msg)

    suggestion_text = Text("\n".join(suggestions))

    content = Table.grid(padding=(1, 0))
    content.add_row(error_text)
    content.add_row()
    content.add_row(Text("Suggestions", style="bold yellow"))
    content.add_row(suggestion_text)

    if context:
        content.add_row()
        content.add_row(Text(f"Context: {context}", style="dim"))

    return Panel(
        content,
        title="[bold red]An Error Occurred[/bold red]",
        border_style="red",
        expand=False,
    )


def print_config(config_path: Path, config_text: str, console: Optional[Console] = None):
    """Displays the raw configuration file."""
    console = console or Console()
    console.print(
        Panel(
            Text(config_text.strip()),
            title=f"Configuration ([dim]{config_path}[/dim])",
            border_style="cyan",
        )
    )


def print_validation_table(config: BuildConfig, console: Optional[Console] = None):
    """Displays a summary of the validated settings and the device list."""
    console = console or Console()
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="bold cyan")
    table.add_column()

    table.add_row("Server:", config.server)
    table.add_row("Version:", config.version)
    table.add_row("Output Directory:", f"[dim]{config.output_dir}[/dim]")
    table.add_row("Poll Interval:", f"{config.poll_interval:g}s")
    table.add_row("Packages:", str(len(config.packages)))

    devices = Table(box=box.SIMPLE, padding=(0, 1))
    devices.add_column("Target", style="bold")
    devices.add_column("Profile", style="magenta")
    devices.add_column("Version", style="cyan")
    devices.add_column("Extra Packages", justify="right")
    for device in config.devices:
        devices.add_row(
            device.target,
            device.profile,
            config.version_for(device.target),
            str(len(device.extra_packages)),
        )

    content = Table.grid()
    content.add_row(table)
    content.add_row(devices)
    console.print(
        Panel(
            content,
            title="[bold green]✓ Validated Settings[/bold green]",
            border_style="green",
        )
    )


def print_verify_table(
    results: dict[str, dict[str, Any]], console: Optional[Console] = None
):
    """Displays per-image verification results grouped by metadata file."""
    console = console or Console()
    table = Table(box=box.SIMPLE, padding=(0, 1))
    table.add_column("Build", style="dim")
    table.add_column("Image")
    table.add_column("SHA-256", justify="center")
    for build, images in results.items():
        for name, ok in images.items():
            table.add_row(build, name, "[green]✓[/green]" if ok else "[red]✗[/red]")
    console.print(table)


def print_summary_panel(stats: BuildStats, console: Optional[Console] = None):
    """Displays the final summary of the build session."""
    console = console or Console()

    stats_table = Table(show_header=False, box=None, padding=(0, 2))
    stats_table.add_column(style="bold cyan", justify="right", width=18)
    stats_table.add_column(style="white", justify="left")

    stats_table.add_row(
        "✓ Succeeded:",
        f"[bold green]{stats.tasks_succeeded}[/bold green] / {stats.tasks_total}",
    )
    if stats.tasks_failed > 0:
        stats_table.add_row("✗ Failed:", f"[bold red]{stats.tasks_failed}[/bold red]")
    if stats.tasks_canceled > 0:
        stats_table.add_row("○ Canceled:", f"[yellow]{stats.tasks_canceled}[/yellow]")

    stats_table.add_row("", "")
    stats_table.add_row("Images:", f"[cyan]{stats.images_downloaded}[/cyan]")
    stats_table.add_row(
        "Total Size:", f"[cyan]{format_size(stats.bytes_downloaded)}[/cyan]"
    )
    stats_table.add_row(
        "Time Elapsed:", f"[blue]{format_duration(stats.elapsed)}[/blue]"
    )

    if stats.all_succeeded:
        title = "📦 [bold]Builds Complete![/bold]"
        border_color = "green"
    else:
        title = "⚠️  [bold]Builds Incomplete[/bold]"
        border_color = "red"

    console.print()
    console.print(
        Panel(
            stats_table,
            title=title,
            border_style=border_color,
            box=box.DOUBLE,
            expand=False,
            padding=(1, 2),
        )
    )
    for failure in stats.failures:
        console.print(Text(f"  ✗ {failure}", style="red"))
    console.print()
