"""Install command implementation."""

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
from pour.core.errors import PourError, retry_on_transient
from pour.core.installer import Installer

FILE = click.Path(exists=True, dir_okay=False, path_type=Path)


@click.command()
@click.argument("package_spec")
@click.option("--formula", "-f", "formula_file", type=FILE, help="Formula record (YAML or JSON)")
@click.option("--archive", "-a", type=FILE, help="Install from a local bottle instead of fetching")
@click.option("--global", "-g", "use_global", is_flag=True, help="Install into the global root")
def install(package_spec: str, formula_file: Path | None, archive: Path | None, use_global: bool):
    """Install a package from a bottle.

    PACKAGE_SPEC is NAME or NAME@VERSION. The formula comes from --formula
    or from an earlier install that cached it. Inside a project (a directory
    with pour.yaml) packages go to the project's .pour root.
    """
    config = load_config(use_global)
    installer = Installer(config)

    try:
        spec = parse_spec(package_spec)
        formula = resolve_formula(spec, formula_file, MetadataCache(config))

        console.print(f"[blue]Installing[/blue] {formula.name} {formula.version}...")
        with progress_sink() as sink:
            if archive is None:
                fetch = retry_on_transient(max_retries=config.fetch_retries)(
                    installer.fetch_bottle
                )
                archive = fetch(formula, sink=sink)
            package = installer.install(formula, archive, sink=sink)
    except PourError as e:
        fail(e)
    finally:
        installer.close()

    if package.binaries:
        console.print(f"  Linked binaries: {', '.join(package.binaries)}")
    if package.receipt and package.receipt.repair_summary:
        console.print(f"  [dim]{package.receipt.repair_summary}[/dim]")

    console.print(
        f"\n[green]✓[/green] Successfully installed [bold]{package.name}[/bold] {package.version}"
    )
    console.print(f"\n[dim]Make sure {config.bin_dir} is in your PATH[/dim]")
