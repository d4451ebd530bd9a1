"""CLI entry point for pour."""

import click

from pour import __version__
from pour.commands import (
    info,
    install,
    list_cmd,
    repair,
    run,
    switch,
    uninstall,
    upgrade,
    verify,
    which,
)
from pour.core.logging import configure_logging


@click.group()
@click.version_option(version=__version__, prog_name="pour")
@click.option("--verbose", "-v", is_flag=True, help="Also log to stderr")
def main(verbose: bool):
    """Pour - A package manager for prebuilt bottles.

    Keeps several versions of a package side by side, globally or per
    project.

    Examples:

        pour install wget --formula wget.yaml

        pour install wget@1.25.0 --archive wget--1.25.0.arm64_sequoia.bottle.tar.gz

        pour switch wget 1.24.5

        pour which wget --all
    """
    configure_logging(level="DEBUG" if verbose else None, enable_console=verbose, force=True)


# Register commands
main.add_command(install.install)
main.add_command(uninstall.uninstall)
main.add_command(upgrade.upgrade)
main.add_command(switch.switch)
main.add_command(verify.verify)
main.add_command(repair.repair)
main.add_command(list_cmd.list_packages)
main.add_command(info.info)
main.add_command(which.which)
main.add_command(run.run)


if __name__ == "__main__":
    main()
