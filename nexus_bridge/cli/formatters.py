"""
Functions for formatting and displaying data in the console using Rich.
"""

from pathlib import Path
from typing import Any

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from nexus_bridge.models.config import BridgeConfig
from nexus_bridge.models.stats import PipelineStats
from nexus_bridge.utils.formatting import format_duration, format_size


def format_error_with_suggestions(
    error: Exception, context: dict | None = None
) -> Panel:
    """Formats an error with actionable suggestions into a Rich Panel."""
    error_type = type(error).__name__
    error_msg = str(error)

    suggestions_map = {
        "AuthenticationError": [
            "• Verify the API key in the configuration file.",
            "• Generate a new personal API key on nexusmods.com and run `nexus-bridge init` again.",
        ],
        "PremiumRequiredError": [
            "• Direct download links require a Nexus Premium membership.",
            "• Download the missing archives manually into the instance's 'downloads' folder.",
        ],
        "ConfigurationError": [
            "• Run `nexus-bridge validate` to see which setting is rejected.",
            "• Run `nexus-bridge init --force` to recreate the configuration.",
        ],
        "ParseError": [
            "• Make sure the file is a collection.json exported by Nexus Mods.",
            "• Download the collection again if the file may be truncated.",
        ],
        "CollectionFetchError": [
            "• Check that the collection URL is correct and public.",
            "• Try again in a few minutes; the Nexus API may be unavailable.",
        ],
        "TransientTransferError": [
            "• A network connection issue occurred.",
            "• Reduce `--workers` if you are being rate-limited.",
            "• Please try again in a few minutes.",
        ],
    }
    suggestions = suggestions_map.get(
        error_type, ["• Run the command with -vv for detailed logs."]
    )

    error_text = Text()
    error_text.append(f"{error_type}: ", style="bold red")
    error_text.append(error_msg)

    content = Table.grid(padding=(1, 0))
    content.add_row(error_text)
    content.add_row()
    content.add_row(Text("Suggestions", style="bold yellow"))
    content.add_row(Text("\n".join(suggestions)))
    if context:
        content.add_row()
        content.add_row(Text(f"Context: {context}", style="dim"))

    return Panel(
        content,
        title="[bold red]An Error Occurred[/bold red]",
        border_style="red",
        expand=False,
    )


def print_config(config_path: Path, config_data: dict[str, Any]):
    """Displays the current configuration, hiding the API key."""
    console = Console()
    content = ""
    for key, value in config_data.items():
        if key == "api_key":
            value = "[hidden]" if value else "(not set)"
        content += f"{key} = {value}\n"
    console.print(
        Panel(
            content.strip(),
            title=f"Configuration ([dim]{config_path}[/dim])",
            border_style="cyan",
        )
    )


def print_validation_table(config: BridgeConfig):
    """Displays a summary of the current settings."""
    console = Console()
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="bold cyan")
    table.add_column()

    table.add_row("API Key:", "[green]Set[/green]" if config.api_key else "[red]Missing[/red]")
    table.add_row("Game:", config.game_domain)
    table.add_row("Max Workers:", str(config.max_workers or "auto"))
    table.add_row(
        "Retries:",
        f"{config.download_retries} × {config.retry_backoff:g}s "
        f"[dim](≤ {config.retry_workers} workers)[/dim]",
    )
    table.add_row("Profile:", config.profile)
    table.add_row(
        "Auto Continue:", "✓ Enabled" if config.auto_continue else "✗ Disabled"
    )
    weights = ", ".join(f"{k}={v:g}" for k, v in config.fusion_weights().items())
    table.add_row("Fusion Weights:", f"[dim]{weights}[/dim]")

    console.print(
        Panel(
            table,
            title="[bold green]✓ Validated Settings[/bold green]",
            border_style="green",
        )
    )


def print_failures_table(failures: list[tuple[str, str]]):
    """Lists the packages that failed with their reasons."""
    console = Console()
    table = Table(title="Failed Packages", box=box.ROUNDED)
    table.add_column("Package", style="cyan")
    table.add_column("Reason", style="red")
    for name, reason in failures:
        table.add_row(name, reason)
    console.print(table)


def print_summary_panel(stats: PipelineStats, duration_s: float, cancelled: bool = False):
    """Displays the final summary of an install session."""
    console = Console()

    stats_table = Table(show_header=False, box=None, padding=(0, 2))
    stats_table.add_column(style="bold cyan", justify="right", width=20)
    stats_table.add_column(style="white", justify="left")

    stats_table.add_row("↓ Downloaded:", f"[bold green]{stats.downloaded}[/bold green]")
    stats_table.add_row("✓ Installed:", f"[bold green]{stats.installed}[/bold green]")
    if stats.skipped:
        stats_table.add_row("○ Skipped:", f"[yellow]{stats.skipped} (already installed)[/yellow]")
    if stats.unsupported:
        stats_table.add_row("○ Unsupported:", f"[yellow]{stats.unsupported}[/yellow]")
    if stats.install_warnings:
        stats_table.add_row("⚠ Warnings:", f"[yellow]{stats.install_warnings}[/yellow]")
    if stats.integrity_warnings:
        stats_table.add_row(
            "⚠ Integrity:", f"[yellow]{stats.integrity_warnings} archive(s) failed size/MD5 checks[/yellow]"
        )
    if stats.failed:
        stats_table.add_row(
            "✗ Failed:",
            f"[bold red]{stats.failed}[/bold red] "
            f"[dim]({stats.failed_downloads} download, {stats.failed_installs} install)[/dim]",
        )

    stats_table.add_row("", "")
    stats_table.add_row("Total Size:", f"[cyan]{format_size(stats.bytes_downloaded)}[/cyan]")
    avg_speed = stats.bytes_downloaded / duration_s if duration_s > 0 else 0
    stats_table.add_row("Avg. Speed:", f"[magenta]{format_size(int(avg_speed))}/s[/magenta]")
    stats_table.add_row("Time Elapsed:", f"[blue]{format_duration(duration_s)}[/blue]")

    if stats.rules_applied or stats.rules_dropped:
        stats_table.add_row("", "")
        stats_table.add_row("Rules Applied:", f"[cyan]{stats.rules_applied}[/cyan]")
        if stats.rules_dropped:
            stats_table.add_row("Rules Dropped:", f"[yellow]{stats.rules_dropped}[/yellow]")
        if stats.violations:
            stats_table.add_row("Violations:", f"[yellow]{stats.violations}[/yellow]")

    if cancelled:
        title = "[bold]Installation Cancelled[/bold]"
        border_color = "red"
    elif stats.failed:
        title = "[bold]Installation Finished With Errors[/bold]"
        border_color = "yellow"
    else:
        title = "[bold]Installation Complete![/bold]"
        border_color = "green"

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
    console.print()
