"""Switch command implementation."""

import click

from pour.commands.common import console, fail, load_config
from pour.core.errors import PourError
from pour.core.installer import Installer


@click.command()
@click.argument("package_name")
@click.argument("version")
@click.option("--global", "-g", "use_global", is_flag=True, help="Use the global root")
def switch(package_name: str, version: str, use_global: bool):
    """Make an installed VERSION the default for PACKAGE_NAME."""
    installer = Installer(load_config(use_global))

    try:
        package = installer.switch(package_name, version)
    except PourError as e:
        fail(e)

    console.print(
        f"[green]✓[/green] [bold]{package.name}[/bold] now defaults to {package.version}"
    )
    if package.binaries:
        console.print(f"  Linked: {', '.join(package.binaries)}")
