"""Run command implementation."""

import os
import subprocess
from pathlib import Path

import click

from pour.commands.common import console
from pour.core.config import PourConfig
from pour.core.resolution import BinaryResolver


@click.command(context_settings={"ignore_unknown_options": True})
@click.argument("command")
@click.argument("args", nargs=-1, type=click.UNPROCESSED)
def run(command: str, args: tuple[str, ...]):
    """Run COMMAND with managed packages first on PATH."""
    resolver = BinaryResolver(PourConfig.default())
    cwd = Path.cwd()

    match = resolver.resolve(command, cwd)
    if match is None:
        console.print(f"[red]{command}[/red] not found")
        raise SystemExit(127)

    env = resolver.run_environment(cwd)
    try:
        result = subprocess.run([os.fspath(match.path), *args], env=env, check=False)
    except OSError as e:
        console.print(f"[red]Error:[/red] could not run {match.path}: {e}")
        raise SystemExit(126)
    raise SystemExit(result.returncode)
