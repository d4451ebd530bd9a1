"""List command implementation."""

import click
from rich.table import Table

from pour.commands.common import console, load_config
from pour.core.installer import Installer


@click.command("list")
@click.option("--global", "-g", "use_global", is_flag=True, help="Use the global root")
def list_packages(use_global: bool):
    """List all installed packages."""
    config = load_config(use_global)
    packages = Installer(config).installed_packages()

    if not packages:
        console.print("No packages installed")
        console.print("\nInstall packages with: pour install <name> --formula <file>")
        raise SystemExit(0)

    table = Table(show_header=True, header_style="bold", title=str(config.home))
    table.add_column("Package")
    table.add_column("Version")
    table.add_column("Default")
    table.add_column("Binaries")
    table.add_column("Installed")

    for pkg in packages:
        installed = pkg.receipt.installed_at.strftime("%Y-%m-%d %H:%M") if pkg.receipt else ""
        table.add_row(
            pkg.name,
            pkg.version,
            "✓" if pkg.is_default else "",
            ", ".join(pkg.binaries),
            installed,
        )

    console.print(table)
