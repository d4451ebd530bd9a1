"""Upgrade command implementation."""

from pathlib import Path

import click

from pour.commands.common import (
    console,
    fail,
    load_config,
    parse_spec,
    progress_sink,
    resolve_formula,
)
from pour.core.cache import MetadataCache
from pour.core.errors import FormulaNotFound, PourError, retry_on_transient
from pour.core.installer import Installer

FILE = click.Path(exists=True, dir_okay=False, path_type=Path)


@click.command()
@click.argument("package_name")
@click.option("--formula", "-f", "formula_file", type=FILE, help="Formula record for the new version")
@click.option("--archive", "-a", type=FILE, help="Local bottle for the new version")
@click.option("--global", "-g", "use_global", is_flag=True, help="Use the global root")
def upgrade(package_name: str, formula_file: Path | None, archive: Path | None, use_global: bool):
    """Upgrade a package to the version its formula describes.

    The new version is installed first; the old one is removed only after
    that succeeds.
    """
    config = load_config(use_global)
    installer = Installer(config)

    try:
        spec = parse_spec(package_name)
        layout = installer.layout
        versions = layout.installed_versions(spec.name)
        if not versions:
            raise FormulaNotFound(spec.name)
        current = installer.installed_package(
            spec.name, layout.default_version(spec.name) or versions[-1]
        )

        formula = resolve_formula(spec, formula_file, MetadataCache(config))
        if formula.version == current.version:
            console.print(f"[green]{spec.name}[/green] is up to date ({current.version})")
            return

        console.print(
            f"[blue]Upgrading[/blue] {spec.name}: {current.version} → {formula.version}"
        )
        with progress_sink() as sink:
            if archive is None:
                fetch = retry_on_transient(max_retries=config.fetch_retries)(
                    installer.fetch_bottle
                )
                archive = fetch(formula, sink=sink)
            package = installer.upgrade_package(current, formula, archive, sink=sink)
    except PourError as e:
        fail(e)
    finally:
        installer.close()

    console.print(
        f"\n[green]✓[/green] Upgraded [bold]{package.name}[/bold] to {package.version}"
    )
