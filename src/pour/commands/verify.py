"""Verify command implementation."""

import click

from pour.commands.common import console, fail, load_config, parse_spec
from pour.core.errors import EXIT_SYSTEM_ERROR, FormulaNotFound, PourError
from pour.core.installer import Installer
from pour.models.spec import PackageSpecification


@click.command()
@click.argument("package_spec")
@click.option("--global", "-g", "use_global", is_flag=True, help="Use the global root")
def verify(package_spec: str, use_global: bool):
    """Check that installed versions and their links are intact."""
    installer = Installer(load_config(use_global))

    try:
        spec = parse_spec(package_spec)
        versions = (
            [spec.version] if spec.version else installer.layout.installed_versions(spec.name)
        )
        if not versions:
            raise FormulaNotFound(spec.name)
        statuses = {
            v: installer.verify_installation(PackageSpecification(spec.name, v)) for v in versions
        }
    except PourError as e:
        fail(e)

    healthy = True
    for version, status in statuses.items():
        if status.is_installed:
            console.print(f"  [green]✓[/green] {spec.name} {version}")
        elif status.is_corrupted:
            healthy = False
            console.print(f"  [red]✗[/red] {spec.name} {version}: {status.reason}")
        else:
            healthy = False
            console.print(f"  [yellow]-[/yellow] {spec.name} {version}: not installed")

    if not healthy:
        console.print(f"\n[dim]Try 'pour repair {spec.name}' or reinstall[/dim]")
        raise SystemExit(EXIT_SYSTEM_ERROR)
