"""Prints rendered build messages to the terminal instead of a chat channel."""

from __future__ import annotations

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from buildwatch.differ.comparator import total_change_count
from buildwatch.models.build import BuildManifest
from buildwatch.models.changes import BuildDifferences

from .renderer import MessageRenderer


def summary_table(build: BuildManifest, differences: BuildDifferences) -> Table:
    table = Table(title=f"Build {build.build_number} ({build.build_hash})")
    table.add_column("Domain", style="bold")
    table.add_column("Added", justify="right")
    table.add_column("Updated", justify="right")
    table.add_column("Removed", justify="right")
    for name, changes in (
        ("Global envs", differences.global_envs),
        ("Experiments", differences.experiments),
        ("Strings", differences.strings),
        ("CSS rules", differences.css_rules),
    ):
        table.add_row(
            name,
            f"[green]{len(changes.added)}[/green]",
            f"[yellow]{len(changes.updated)}[/yellow]",
            f"[red]{len(changes.removed)}[/red]",
        )
    table.add_row("CSP", "", "[yellow]changed[/yellow]" if differences.csp else "-", "")
    table.add_row("[bold]Total[/bold]", "", str(total_change_count(differences)), "")
    return table


class ConsoleNotifier:
    """Dry-run sink: renders the same messages the webhook would receive."""

    def __init__(self, renderer: MessageRenderer, console: Console | None = None):
        self.renderer = renderer
        self.console = console or Console()

    async def publish(self, build: BuildManifest, differences: BuildDifferences) -> None:
        self.console.print(summary_table(build, differences))
        for message in self.renderer.render(build, differences):
            if message.content:
                self.console.print(f"[dim]{escape(message.content)}[/dim]")
            for embed in message.embeds:
                body = [escape(embed.get("description", ""))]
                for embed_field in embed.get("fields", []):
                    body.append(
                        f"[bold]{escape(embed_field['name'])}[/bold]\n{escape(embed_field['value'])}"
                    )
                self.console.print(Panel(
                    "\n".join(part for part in body if part),
                    title=escape(embed.get("title", "")),
                    expand=False,
                ))
