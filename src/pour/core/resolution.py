"""Project detection and command resolution across local, global and system roots."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from pour.core.config import PROJECT_DIR_NAME, PourConfig
from pour.core.paths import resolve_link_target

MANIFEST_NAME = "pour.yaml"


class Scope(Enum):
    LOCAL = "local"
    GLOBAL = "global"
    SYSTEM = "system"


class ProjectContext:
    """The project (if any) a working directory belongs to.

    A directory is a project root when it holds the manifest file; its
    packages live under <project>/.pour.
    """

    def __init__(self, cwd: Path, manifest_name: str = MANIFEST_NAME):
        self.cwd = Path(os.path.abspath(cwd))
        self.manifest_name = manifest_name

    @property
    def is_project(self) -> bool:
        return (self.cwd / self.manifest_name).is_file()

    @property
    def project_root(self) -> Path | None:
        return self.cwd if self.is_project else None

    @property
    def local_root(self) -> Path | None:
        return self.cwd / PROJECT_DIR_NAME if self.is_project else None

    @property
    def local_bin(self) -> Path | None:
        root = self.local_root
        return root / "bin" if root else None

    def ancestor_projects(self) -> list[Path]:
        """Ancestor directories holding a manifest, nearest first."""
        return [p for p in self.cwd.parents if (p / self.manifest_name).is_file()]


@dataclass
class Match:
    """One place a command name resolves to."""

    command: str
    path: Path
    scope: Scope
    version: str | None = None
    is_default: bool = False


@dataclass
class WhichResult:
    command: str
    matches: list[Match] = field(default_factory=list)

    @property
    def found(self) -> bool:
        return bool(self.matches)

    @property
    def default(self) -> Match | None:
        return self.matches[0] if self.matches else None


class BinaryResolver:
    """Finds the binary a command name should run, deterministically.

    Order: the project in cwd, then ancestor projects (nearest first, when
    traverse_parents is on), then the global root, then the system path.
    """

    def __init__(self, config: PourConfig):
        self.config = config
        # Project configs still resolve against the user-wide root
        self.global_bin = config.global_home / "bin" if config.global_home else config.bin_dir

    def resolve(
        self, command: str, cwd: Path, scope: Scope | str | None = None
    ) -> Match | None:
        """Return the first existing match for command, or None."""
        for match in self._candidates(command, cwd, scope):
            return match
        return None

    def which(self, command: str, cwd: Path) -> WhichResult:
        """Every match in precedence order, the first one marked default."""
        matches = list(self._candidates(command, cwd, None))
        if matches:
            matches[0].is_default = True
        return WhichResult(command, matches)

    def run_environment(self, cwd: Path, base: dict[str, str] | None = None) -> dict[str, str]:
        """Environment with managed bin dirs ahead of the inherited PATH."""
        env = dict(os.environ if base is None else base)
        dirs = [d for _, d in self._managed_bin_dirs(ProjectContext(cwd)) if d.is_dir()]
        existing = env.get("PATH", "")
        env["PATH"] = os.pathsep.join([str(d) for d in dirs] + ([existing] if existing else []))
        return env

    def _managed_bin_dirs(self, context: ProjectContext) -> list[tuple[Scope, Path]]:
        dirs = []
        if context.is_project:
            dirs.append((Scope.LOCAL, context.local_bin))
        if self.config.traverse_parents:
            for ancestor in context.ancestor_projects():
                dirs.append((Scope.LOCAL, ancestor / PROJECT_DIR_NAME / "bin"))
        dirs.append((Scope.GLOBAL, self.global_bin))
        return dirs

    def _candidates(self, command: str, cwd: Path, scope: Scope | str | None):
        if isinstance(scope, str):
            scope = Scope(scope)
        context = ProjectContext(cwd)

        managed = self._managed_bin_dirs(context)
        for dir_scope, bin_dir in managed:
            if scope is not None and dir_scope is not scope:
                continue
            path = bin_dir / command
            if path.exists():
                yield Match(command, path, dir_scope, version=link_version(path))

        if scope in (None, Scope.SYSTEM):
            skip = {Path(os.path.abspath(d)) for _, d in managed}
            for directory in self.config.system_path:
                if Path(os.path.abspath(directory)) in skip:
                    continue
                path = Path(directory) / command
                if path.is_file() and os.access(path, os.X_OK):
                    yield Match(command, path, Scope.SYSTEM)


def link_version(path: Path) -> str | None:
    """Version a managed link points at, read from Cellar/<name>/<version>/..."""
    if not path.is_symlink():
        return None
    parts = resolve_link_target(path).parts
    if "Cellar" not in parts:
        return None
    index = len(parts) - 1 - parts[::-1].index("Cellar")
    if index + 2 < len(parts):
        return parts[index + 2]
    return None
