"""Repair command implementation."""

import click

from pour.commands.common import console, fail, load_config
from pour.core.errors import PourError
from pour.core.installer import Installer


@click.command()
@click.argument("package_name", required=False)
@click.option("--global", "-g", "use_global", is_flag=True, help="Use the global root")
def repair(package_name: str | None, use_global: bool):
    """Relocate placeholder paths in installed binaries and re-sign them.

    Repairs every installed package when PACKAGE_NAME is omitted.
    """
    installer = Installer(load_config(use_global))
    names = [package_name] if package_name else installer.layout.installed_names()

    if not names:
        console.print("No packages installed")
        raise SystemExit(0)

    failed = False
    for name in names:
        try:
            reports = installer.repair_installation(name)
        except PourError as e:
            fail(e)

        for version, report in reports.items():
            if report.attempted == 0:
                console.print(f"  [dim]{name} {version}: nothing to repair[/dim]")
                continue
            colour = "red" if report.all_failed else "green"
            console.print(f"  [{colour}]{name} {version}[/{colour}]: {report.summary}")
            for outcome in report.failures:
                failed = True
                console.print(f"    [red]✗[/red] {outcome.path.name}: {outcome.reason}")

    if failed:
        raise SystemExit(1)
