"""Uninstall command implementation."""

import click

from pour.commands.common import console, fail, load_config, parse_spec
from pour.core.errors import PourError
from pour.core.installer import Installer


@click.command()
@click.argument("package_spec")
@click.option("--global", "-g", "use_global", is_flag=True, help="Use the global root")
def uninstall(package_spec: str, use_global: bool):
    """Uninstall a package, or one version of it.

    With NAME every version goes. With NAME@VERSION only that version and
    its pinned links are removed; the default link keeps its target until
    you 'pour switch' to another version.
    """
    installer = Installer(load_config(use_global))

    try:
        spec = parse_spec(package_spec)
        console.print(f"[blue]Uninstalling[/blue] {spec.full_specification}...")
        removed = installer.uninstall(spec.name, spec.version)
    except PourError as e:
        fail(e)

    console.print(f"  Removed versions: {', '.join(removed)}")
    if spec.version:
        remaining = installer.layout.installed_versions(spec.name)
        if remaining and installer.layout.default_version(spec.name) == spec.version:
            console.print(
                f"  [yellow]Default links now dangle;[/yellow] run "
                f"'pour switch {spec.name} {remaining[-1]}'"
            )

    console.print(
        f"\n[green]✓[/green] Successfully uninstalled [bold]{spec.full_specification}[/bold]"
    )
