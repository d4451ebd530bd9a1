"""Which command implementation."""

from pathlib import Path

import click

from pour.commands.common import console
from pour.core.config import PourConfig
from pour.core.resolution import BinaryResolver


@click.command()
@click.argument("command")
@click.option("--all", "-a", "show_all", is_flag=True, help="Show every match, not just the default")
def which(command: str, show_all: bool):
    """Show which binary COMMAND resolves to from here.

    Project roots (this directory, then parent projects) win over the global
    root, which wins over the system PATH.
    """
    resolver = BinaryResolver(PourConfig.default())
    result = resolver.which(command, Path.cwd())

    if not result.found:
        console.print(f"[red]{command}[/red] not found")
        raise SystemExit(1)

    for match in result.matches if show_all else [result.default]:
        version = f" {match.version}" if match.version else ""
        marker = " [green](default)[/green]" if show_all and match.is_default else ""
        console.print(f"{match.path}  [dim]{match.scope.value}{version}[/dim]{marker}")
