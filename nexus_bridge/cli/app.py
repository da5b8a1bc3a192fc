"""
Defines the command-line interface for the application using Typer.
"""

import asyncio
import logging
import os
import time
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler

from nexus_bridge import __version__
from nexus_bridge.api.client import NexusAPIClient
from nexus_bridge.archive import ArchiveExtractor, Downloader
from nexus_bridge.core.installer import PackageFetcher, PackageInstaller
from nexus_bridge.core.load_order import build_load_order
from nexus_bridge.core.pipeline import InstallPipeline
from nexus_bridge.core.planner import InstallPlanner, InstancePaths
from nexus_bridge.exceptions import (
    AuthenticationError,
    CollectionFetchError,
    ConfigurationError,
    NexusBridgeError,
)
from nexus_bridge.models.collection import Collection, Package, parse_collection
from nexus_bridge.models.config import BridgeConfig
from nexus_bridge.models.stats import PipelineStats
from nexus_bridge.storage.config_manager import ConfigManager
from nexus_bridge.storage.folder_registry import FolderRegistry
from nexus_bridge.utils.path import parse_collection_url
from nexus_bridge.utils.structured_logger import create_structured_logger

from .formatters import (
    print_config,
    print_failures_table,
    print_summary_panel,
    print_validation_table,
)
from .progress_manager import ProgressManager

console = Console()

logging.basicConfig(
    level="INFO",
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
log = logging.getLogger("nexus_bridge")

app = typer.Typer(
    name="nexus-bridge",
    help=(
        "Installs Nexus Mods collections into a Mod Organizer 2 instance. Use"
        " 'nexus-bridge <command> --help' for more info."
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
    return base_dir.expanduser() / "nexus-bridge"


CONFIG_DIR = get_config_dir()
CONFIG_FILE = CONFIG_DIR / "config.ini"


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    verbose: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Increase logging verbosity (-vv for debug).",
    ),
    version: bool = typer.Option(
        False, "--version", help="Show version and exit.", is_eager=True
    ),
    show_config: bool = typer.Option(
        False, "--show-config", help="Display the current configuration."
    ),
):
    """Nexus Bridge CLI"""
    if version:
        console.print(f"[bold]nexus-bridge[/bold] version [cyan]{__version__}[/cyan]")
        raise typer.Exit()

    log_level = "INFO"
    if verbose >= 2:
        log_level = "DEBUG"
    logging.getLogger("nexus_bridge").setLevel(log_level)

    if show_config:
        if not CONFIG_FILE.is_file():
            console.print(
                "[red]✗ Config file not found.[/] Run [cyan]nexus-bridge init[/cyan]"
                " first."
            )
            raise typer.Exit(code=1)
        config_manager = ConfigManager(CONFIG_FILE)
        print_config(CONFIG_FILE, config_manager.get_raw_settings())
        raise typer.Exit()

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


@app.command()
def init(
    api_key: str = typer.Argument(..., help="Personal API key from your Nexus Mods account."),
    force: bool = typer.Option(
        False, "--force", "-f", help="Overwrite an existing configuration without asking."
    ),
):
    """Initialize configuration with a Nexus Mods API key."""
    if (
        CONFIG_FILE.exists()
        and not force
        and not typer.confirm("Configuration file already exists. Overwrite it?")
    ):
        raise typer.Abort()

    console.print("\n[cyan]Validating API key...[/cyan]")
    try:
        user = NexusAPIClient(api_key).validate_key()
    except AuthenticationError as e:
        console.print(f"[red]✗ {e}[/red]")
        raise typer.Exit(code=1) from e

    console.print(f"[green]✓ Logged in as [bold]{user.name}[/bold].[/green]")
    if not user.is_premium:
        console.print(
            "[yellow]⚠️  This account is not Premium. Nexus downloads will be refused;"
            " place archives in the instance's 'downloads' folder manually.[/yellow]"
        )

    ConfigManager(CONFIG_FILE).save_new_config({"api_key": api_key})
    console.print(f"\n[bold green]✓ Configuration saved to '{CONFIG_FILE}'[/bold green]")
    console.print(
        "Ready! Try: [cyan]nexus-bridge install <collection.json|URL> <MO2 folder>[/cyan]"
    )


def _load_collection(
    source: str,
    paths: InstancePaths,
    api_client: NexusAPIClient | None,
) -> Collection:
    """Reads a local collection.json or downloads one from a collection URL."""
    local = Path(source).expanduser()
    if local.is_file():
        return parse_collection(local.read_bytes())

    parsed = parse_collection_url(source)
    if parsed is None:
        raise typer.BadParameter(
            f"'{source}' is neither a file nor a Nexus Mods collection URL."
        )
    if api_client is None:
        raise ConfigurationError("An API key is required to download collections.")

    game, slug = parsed
    console.print(f"[cyan]Fetching collection [bold]{slug}[/bold] ({game})...[/cyan]")
    archive = api_client.fetch_collection_archive(game, slug, paths.downloads)
    manifest = ArchiveExtractor().extract_member(
        archive, "collection.json", paths.scratch / f"collection_{slug}"
    )
    if manifest is None:
        raise CollectionFetchError(f"No collection.json found in '{archive.name}'.")
    return parse_collection(manifest.read_bytes())


def _load_config(cli_options: dict) -> BridgeConfig:
    options = {k: v for k, v in cli_options.items() if v is not None}
    if CONFIG_FILE.is_file():
        return ConfigManager(CONFIG_FILE).load_config(options)
    log.debug("No configuration file found, using defaults.")
    return BridgeConfig(**options)


@app.command()
def install(
    collection_source: str = typer.Argument(
        ..., metavar="COLLECTION", help="Path to collection.json or a collection URL."
    ),
    instance: Path = typer.Argument(  # noqa: B008
        ..., help="The Mod Organizer 2 instance folder.", file_okay=False
    ),
    yes: bool = typer.Option(
        False, "--yes", "-y", help="Continue without asking when packages fail."
    ),
    workers: int | None = typer.Option(
        None, "-w", "--workers", help="Number of worker threads per pool (0 = auto)."
    ),
    profile: str | None = typer.Option(
        None, "--profile", help="MO2 profile that receives modlist.txt and plugins.txt."
    ),
    log_dir: Path | None = typer.Option(  # noqa: B008
        None, "--log-dir", help="Write a JSON event log into this folder."
    ),
):
    """Download and install a collection, then write its load order."""
    config = _load_config(
        {
            "max_workers": workers,
            "profile": profile,
            "auto_continue": True if yes else None,
            "log_dir": str(log_dir) if log_dir else None,
        }
    )
    paths = InstancePaths(instance.expanduser().resolve(), config.profile)
    paths.ensure()

    api_client = NexusAPIClient(config.api_key) if config.api_key else None
    if api_client is None:
        log.warning("[yellow]No API key configured; only direct downloads will work.[/yellow]")

    collection = _load_collection(collection_source, paths, api_client)
    console.print(
        f"[bold cyan]Collection:[/bold cyan] {collection.name} "
        f"[dim]by {collection.author} ({len(collection.packages)} mods)[/dim]"
    )

    plan = InstallPlanner(paths, FolderRegistry(paths.root)).plan(collection)
    stats = PipelineStats()
    base_logger, package_events, session = create_structured_logger(
        Path(config.log_dir) if config.log_dir else None
    )
    session.session_started(collection.name, len(collection.packages), config.max_workers)

    start_time = time.monotonic()
    try:
        with ProgressManager(console) as progress:
            fetcher = PackageFetcher(
                paths,
                Downloader(),
                api_client,
                collection.domain_name or config.game_domain,
                stats,
                events=package_events,
                on_bytes=progress.add_bytes,
            )
            installer = PackageInstaller(paths, stats, events=package_events)
            pipeline = InstallPipeline(
                config, fetcher, installer, stats, progress, package_events
            )

            def continue_policy(failed: list[tuple[Package, str]]) -> bool:
                progress.stop()
                print_failures_table([(p.name, reason) for p, reason in failed])
                if config.auto_continue:
                    log.info("[yellow]Continuing despite failures (--yes).[/yellow]")
                    return True
                return typer.confirm("Continue anyway?", default=False)

            pipeline_result = pipeline.run(plan, continue_policy)

        if not pipeline_result.cancelled:
            build_load_order(collection, paths, config, stats, session=session)
        else:
            log.warning("[yellow]Cancelled; modlist.txt and plugins.txt were not written.[/yellow]")
        duration = time.monotonic() - start_time
        session.session_completed(duration, stats.snapshot(), pipeline_result.cancelled)
    finally:
        base_logger.close()

    print_summary_panel(stats, duration, pipeline_result.cancelled)
    if base_logger.json_log_path:
        console.print(f"[dim]Event log: {base_logger.json_log_path}[/dim]")
    if pipeline_result.cancelled or not pipeline_result.ok:
        raise typer.Exit(code=1)
    console.print("Done! Please restart Mod Organizer 2.")


@app.command()
def sort(
    collection_source: str = typer.Argument(
        ..., metavar="COLLECTION", help="Path to collection.json or a collection URL."
    ),
    instance: Path = typer.Argument(  # noqa: B008
        ..., help="The Mod Organizer 2 instance folder.", file_okay=False
    ),
    profile: str | None = typer.Option(
        None, "--profile", help="MO2 profile that receives modlist.txt and plugins.txt."
    ),
):
    """Regenerate modlist.txt and plugins.txt from what is already installed."""
    config = _load_config({"profile": profile})
    paths = InstancePaths(instance.expanduser().resolve(), config.profile)
    paths.ensure()

    api_client = NexusAPIClient(config.api_key) if config.api_key else None
    collection = _load_collection(collection_source, paths, api_client)
    FolderRegistry(paths.root).assign_folders(collection.packages)

    stats = PipelineStats()
    load_order = build_load_order(collection, paths, config, stats)
    console.print(
        f"[green]✓ Wrote {len(load_order.mod_order)} mods and "
        f"{len(load_order.plugin_order)} plugins to profile "
        f"'{config.profile}'.[/green]"
    )
    if load_order.sort_result.violations:
        console.print(
            f"[yellow]⚠️  {load_order.sort_result.violations} ordering rules could not"
            " be honoured (cyclic rules).[/yellow]"
        )


@app.command()
def validate():
    """Validate the current configuration."""
    try:
        config_manager = ConfigManager(CONFIG_FILE)
        config = config_manager.load_config()
        print_validation_table(config)
    except NexusBridgeError as e:
        console.print(f"[red]✗ Configuration is invalid: {e}[/red]")
        raise typer.Exit(code=1) from e


@app.command()
def diagnose():
    """Diagnose common configuration and connectivity issues."""
    console.print("\n[bold cyan]Running diagnostics...[/bold cyan]\n")
    issues_found = False
    if CONFIG_FILE.is_file():
        console.print(f"[green]✓[/] Config file exists at: [dim]{CONFIG_FILE}[/dim]")
    else:
        console.print(
            "[red]✗ Config file not found.[/] Run [cyan]nexus-bridge init[/cyan]."
        )
        raise typer.Exit(code=1)

    config = None
    try:
        config = ConfigManager(CONFIG_FILE).load_config()
        console.print("[green]✓[/] Configuration file is valid and can be loaded.")
        if not config.api_key:
            console.print("[red]✗ API key is missing.[/] Run `init` again.")
            issues_found = True
    except NexusBridgeError as e:
        console.print(f"[red]✗ Configuration validation failed: {e}[/red]")
        issues_found = True

    if config and config.api_key:
        try:
            user = NexusAPIClient(config.api_key).validate_key()
            premium = "Premium" if user.is_premium else "[yellow]not Premium[/yellow]"
            console.print(f"[green]✓[/] API key is valid ({user.name}, {premium}).")
        except NexusBridgeError as e:
            console.print(f"[red]✗ API key check failed: {e}[/red]")
            issues_found = True

    console.print("\n[dim]Testing connectivity to Nexus Mods servers...[/dim]")

    async def test_connection():
        import aiohttp

        try:
            timeout = aiohttp.ClientTimeout(total=10)
            async with (
                aiohttp.ClientSession(timeout=timeout) as session,
                session.get(NexusAPIClient.BASE_URL) as resp,
            ):
                if resp.status < 500:
                    console.print("[green]✓[/] Successfully connected to Nexus Mods.")
                    return True
                console.print(
                    f"[red]✗ Could not connect to Nexus Mods (Status: {resp.status}).[/red]"
                )
                return False
        except Exception as e:
            console.print(f"[red]✗ Connection test failed: {e}[/red]")
            return False

    if not asyncio.run(test_connection()):
        issues_found = True
    console.print()
    if not issues_found:
        console.print(
            "[bold green]✓ All checks passed! Your setup looks good.[/bold green]\n"
        )
    else:
        console.print(
            "[bold red]✗ Some issues were found. "
            "Please review the messages above.[/bold red]\n"
        )
        raise typer.Exit(code=1)
