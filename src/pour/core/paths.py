"""Layout of one installation root and its symlink farm."""

from __future__ import annotations

import os
import re
import uuid
from pathlib import Path

from pour.core.config import PourConfig
from pour.core.errors import InvalidSpecification, SymlinkFailed
from pour.models.spec import is_path_component


class PathLayout:
    """Where things live under a root.

    <root>/Cellar/<name>/<version>/   installed versions
    <root>/bin/<cmd>                  default link
    <root>/bin/<cmd>@<version>        pinned link
    <root>/opt/<name>                 default version directory
    """

    def __init__(self, config: PourConfig):
        self.config = config
        self.root = config.home
        self.cellar_dir = config.cellar_dir
        self.bin_dir = config.bin_dir
        self.opt_dir = config.opt_dir
        self.cache_dir = config.cache_dir
        self.tmp_dir = config.tmp_dir

    def package_dir(self, name: str) -> Path:
        return self.cellar_dir / _component(name)

    def version_dir(self, name: str, version: str) -> Path:
        return self.cellar_dir / _component(name) / _component(version, name)

    def bin_link(self, command: str) -> Path:
        return self.bin_dir / command

    def pinned_link(self, command: str, version: str) -> Path:
        return self.bin_dir / f"{command}@{version}"

    def opt_link(self, name: str) -> Path:
        return self.opt_dir / _component(name)

    def temporary_path(self, prefix: str) -> Path:
        """A fresh, not-yet-existing path under tmp/."""
        self.tmp_dir.mkdir(parents=True, exist_ok=True)
        return self.tmp_dir / f"{prefix}-{uuid.uuid4().hex[:12]}"

    def installed_names(self) -> list[str]:
        if not self.cellar_dir.is_dir():
            return []
        return sorted(
            p.name for p in self.cellar_dir.iterdir() if p.is_dir() and not p.name.startswith(".")
        )

    def installed_versions(self, name: str) -> list[str]:
        """Installed versions of a package, sorted, hidden entries ignored."""
        package_dir = self.package_dir(name)
        if not package_dir.is_dir():
            return []
        return sorted(
            (p.name for p in package_dir.iterdir() if p.is_dir() and not p.name.startswith(".")),
            key=version_key,
        )

    def exposed_binaries(self, version_dir: Path) -> list[Path]:
        """Executables under <version>/bin that get links in the farm."""
        bin_dir = version_dir / "bin"
        if not bin_dir.is_dir():
            return []
        return sorted(
            p
            for p in bin_dir.iterdir()
            if not p.name.startswith(".") and p.is_file() and os.access(p, os.X_OK)
        )

    def points_into(self, link: Path, directory: Path) -> bool:
        """True if link is a symlink whose target lies inside directory."""
        if not link.is_symlink():
            return False
        target = resolve_link_target(link)
        directory = Path(os.path.abspath(directory))
        return target == directory or directory in target.parents

    def default_version(self, name: str) -> str | None:
        """The version the opt link currently points at, if any."""
        opt = self.opt_link(name)
        if not opt.is_symlink():
            return None
        target = resolve_link_target(opt)
        if target.parent == Path(os.path.abspath(self.package_dir(name))):
            return target.name
        return None

    def link(self, link_path: Path, target: Path) -> None:
        """Point link_path at target with a relative symlink, atomically.

        A new link is created under a temporary name in the same directory
        and renamed over the old one, so readers always see a valid link.
        """
        link_path = Path(link_path)
        relative = os.path.relpath(target, link_path.parent)
        temp = link_path.parent / f".{link_path.name}.{uuid.uuid4().hex[:8]}.tmp"

        try:
            link_path.parent.mkdir(parents=True, exist_ok=True)
            os.symlink(relative, temp)
            os.replace(temp, link_path)
        except OSError as e:
            temp.unlink(missing_ok=True)
            raise SymlinkFailed(str(link_path), str(target), error=str(e)) from e


def _component(value: str, package: str | None = None) -> str:
    # Names and versions become single directory entries under the Cellar
    if not is_path_component(value):
        spec = f"{package}@{value}" if package else value
        raise InvalidSpecification(spec, context={"component": value})
    return value


def resolve_link_target(link: Path) -> Path:
    """Absolute, normalised target of a symlink (without following further links)."""
    raw = os.readlink(link)
    return Path(os.path.normpath(os.path.join(os.path.dirname(os.path.abspath(link)), raw)))


def version_key(version: str) -> tuple:
    """Sort key that orders 1.10 after 1.9."""
    parts = []
    for piece in re.split(r"[._-]", version):
        if piece.isdigit():
            parts.append((0, int(piece), ""))
        else:
            parts.append((1, 0, piece))
    return tuple(parts)
