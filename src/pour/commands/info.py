"""Info command implementation."""

import click
from rich.panel import Panel

from pour.commands.common import console, fail, load_config, parse_spec
from pour.core.cache import MetadataCache
from pour.core.errors import FormulaNotFound, PourError
from pour.core.installer import Installer


@click.command()
@click.argument("package_name")
@click.option("--global", "-g", "use_global", is_flag=True, help="Use the global root")
def info(package_name: str, use_global: bool):
    """Show detailed information about a package."""
    config = load_config(use_global)
    installer = Installer(config)

    try:
        spec = parse_spec(package_name)
        formula = MetadataCache(config).get(spec.name)
        versions = installer.layout.installed_versions(spec.name)
        if formula is None and not versions:
            raise FormulaNotFound(spec.name)
        packages = [installer.installed_package(spec.name, v) for v in versions]
    except PourError as e:
        fail(e)

    if formula:
        lines = [
            f"[bold]Name:[/bold] {formula.name}",
            f"[bold]Version:[/bold] {formula.version}",
        ]
        if formula.description:
            lines.append(f"[bold]Description:[/bold] {formula.description}")
        if formula.homepage:
            lines.append(f"[bold]Homepage:[/bold] {formula.homepage}")
        if formula.dependencies:
            deps = ", ".join(
                d.name if d.kind.value == "required" else f"{d.name} ({d.kind.value})"
                for d in formula.dependencies
            )
            lines.append(f"[bold]Dependencies:[/bold] {deps}")
        bottle = formula.preferred_bottle(config.target)
        lines.append(
            f"[bold]Bottle:[/bold] {bottle.platform if bottle else 'none for ' + config.target.tag}"
        )
        console.print(Panel("\n".join(lines), title=f"[green]{formula.name}[/green]"))

    if not packages:
        console.print("[dim]Not installed[/dim]")
        return

    console.print("\n[bold]Installed versions:[/bold]")
    for pkg in packages:
        marker = " [green](default)[/green]" if pkg.is_default else ""
        console.print(f"  • {pkg.version}{marker}  [dim]{pkg.path}[/dim]")
        if pkg.receipt:
            console.print(
                f"    installed {pkg.receipt.installed_at.strftime('%Y-%m-%d %H:%M')}, "
                f"{pkg.receipt.repair_summary}"
            )
        if pkg.binaries:
            console.print(f"    binaries: {', '.join(pkg.binaries)}")
