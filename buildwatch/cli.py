"""CLI entry point for the build watcher."""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Optional

import click
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler

from buildwatch.client import BuildsClient
from buildwatch.coordinator import Notifier, PollCoordinator
from buildwatch.differ.comparator import BuildComparator
from buildwatch.errors import BuildWatchError
from buildwatch.extractor.extractor import AssetExtractor
from buildwatch.extractor.strings import StringTableExtractor
from buildwatch.models.config import DEFAULT_CONFIG_PATH, NotificationConfig, WatcherConfig
from buildwatch.notifier.console import ConsoleNotifier, summary_table
from buildwatch.notifier.discord_webhook import DiscordWebhookNotifier
from buildwatch.notifier.renderer import MessageRenderer
from buildwatch.utils.browser import BrowserRuntime
from buildwatch.utils.sandbox import ScriptSandbox

console = Console()
logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


def _load_config(path: str) -> WatcherConfig:
    try:
        return WatcherConfig.load(path)
    except FileNotFoundError:
        console.print(f"[red]Config file not found: {path}[/red]")
        console.print("Run 'buildwatch init' to create a default config.")
        sys.exit(1)
    except ValidationError as e:
        console.print(f"[red]Invalid config {path}:[/red]\n{e}")
        sys.exit(1)


def build_comparator(runtime: BrowserRuntime, config: WatcherConfig) -> tuple[BuildsClient, BuildComparator]:
    """Wire the client, extractors, and comparator onto a started runtime."""
    client = BuildsClient(runtime.request, config)
    sandbox = ScriptSandbox(runtime.sandbox_context, config.sandbox_timeout_ms)
    strings = StringTableExtractor(
        sandbox,
        marker_key=config.strings_marker_key,
        module_skip=config.strings_module_skip,
    )
    extractor = AssetExtractor(client, strings, script_index=config.strings_script_index)
    return client, BuildComparator(extractor)


def build_notifier(runtime: BrowserRuntime, config: WatcherConfig, dry_run: bool) -> Notifier:
    renderer = MessageRenderer(config.notifications, config.release_channel)
    if dry_run:
        return ConsoleNotifier(renderer, console)
    return DiscordWebhookNotifier(runtime.request, config.notifications.webhook_url, renderer)


async def _watch(config: WatcherConfig, once: bool, dry_run: bool) -> None:
    async with BrowserRuntime(config) as runtime:
        client, comparator = build_comparator(runtime, config)
        notifier = build_notifier(runtime, config, dry_run)
        coordinator = PollCoordinator(client, comparator, notifier)
        if once:
            await coordinator.tick()
        else:
            await coordinator.run(config.poll_interval_seconds)


async def _compare(config: WatcherConfig, new_hash: str, old_hash: str, json_path: Optional[str]) -> None:
    async with BrowserRuntime(config) as runtime:
        client, comparator = build_comparator(runtime, config)
        newer, older = await asyncio.gather(
            client.get_manifest(new_hash), client.get_manifest(old_hash),
        )
        differences = await comparator.compare(newer, older)

    console.print(summary_table(newer, differences))
    if json_path:
        path = Path(json_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(differences.to_dict(), f, indent=2, default=str)
        console.print(f"Differences written to [blue]{path}[/blue]")


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def cli(verbose: bool) -> None:
    """Watches published client builds and reports what changed."""
    setup_logging(verbose)


@cli.command()
@click.option("--config", "-c", default=DEFAULT_CONFIG_PATH, help="Config file path")
@click.option("--once", is_flag=True, help="Run a single poll tick and exit")
@click.option("--dry-run", is_flag=True, help="Print notifications instead of sending them")
def watch(config: str, once: bool, dry_run: bool) -> None:
    """Poll the build index and publish changes for every new build."""
    cfg = _load_config(config)
    if not dry_run and not cfg.notifications.webhook_url:
        console.print("[red]notifications.webhook_url is not set (use --dry-run to print instead)[/red]")
        sys.exit(1)
    try:
        asyncio.run(_watch(cfg, once, dry_run))
    except KeyboardInterrupt:
        console.print("[yellow]Stopped[/yellow]")
    except BuildWatchError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)


@cli.command()
@click.argument("new_hash")
@click.argument("old_hash")
@click.option("--config", "-c", default=DEFAULT_CONFIG_PATH, help="Config file path")
@click.option("--json", "json_path", default=None, help="Write the differences to this JSON file")
def compare(new_hash: str, old_hash: str, config: str, json_path: Optional[str]) -> None:
    """Compare two builds by hash and print a summary."""
    cfg = _load_config(config) if Path(config).exists() else WatcherConfig()
    try:
        asyncio.run(_compare(cfg, new_hash, old_hash, json_path))
    except BuildWatchError as e:
        console.print(f"[red]Comparison failed: {e}[/red]")
        sys.exit(1)


@cli.command()
@click.option("--config", "-c", default=DEFAULT_CONFIG_PATH, help="Config file path")
@click.option("--webhook-url", default=None, help="Webhook URL or an env:NAME reference")
def init(config: str, webhook_url: Optional[str]) -> None:
    """Create a default configuration file."""
    config_path = Path(config)
    if config_path.exists():
        if not click.confirm(f"{config_path} already exists. Overwrite?"):
            return

    # Built unvalidated so an env:NAME reference is saved as written
    notifications = NotificationConfig.model_construct(webhook_url=webhook_url)
    WatcherConfig(notifications=notifications).save(config_path)

    console.print(f"[green]Created {config_path}[/green]")
    console.print("\nYou can now customize this file and run:")
    console.print("  [blue]buildwatch watch[/blue]")


if __name__ == "__main__":
    cli()
