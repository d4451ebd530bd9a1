"""Configuration and path management for pour."""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path

import yaml

from pour.core.errors import UserError
from pour.core.platform import PlatformInfo

DEFAULT_BOTTLE_DOMAIN = "https://ghcr.io/v2/homebrew/core"
PROJECT_DIR_NAME = ".pour"

# Settings a config.yaml may override
TUNABLES = (
    "max_streams",
    "chunk_size",
    "timeout",
    "fetch_retries",
    "bottle_domain",
    "traverse_parents",
)


def _system_path() -> list[Path]:
    return [Path(p) for p in os.environ.get("PATH", "").split(os.pathsep) if p]


@dataclass
class PourConfig:
    """Roots and settings for one installation root (global or project)."""

    home: Path
    bin_dir: Path
    opt_dir: Path
    cellar_dir: Path
    cache_dir: Path
    tmp_dir: Path
    logs_dir: Path
    max_streams: int = 8
    chunk_size: int = 1024 * 1024
    timeout: float = 30.0
    fetch_retries: int = 3
    bottle_domain: str = DEFAULT_BOTTLE_DOMAIN
    traverse_parents: bool = True
    system_path: list[Path] = field(default_factory=_system_path)
    target: PlatformInfo = field(default_factory=PlatformInfo.detect)
    global_home: Path | None = None  # set on project configs

    @classmethod
    def at(cls, home: Path, **settings) -> "PourConfig":
        """Create config rooted at an explicit directory."""
        home = Path(home)
        return cls(
            home=home,
            bin_dir=home / "bin",
            opt_dir=home / "opt",
            cellar_dir=home / "Cellar",
            cache_dir=home / "cache",
            tmp_dir=home / "tmp",
            logs_dir=home / "logs",
            **settings,
        )

    @classmethod
    def default(cls) -> "PourConfig":
        """Create config with default paths, overlaid by <home>/config.yaml."""
        home = Path(os.environ.get("POUR_HOME", Path.home() / ".pour"))
        return cls.at(home, **load_overrides(home / "config.yaml"))

    def for_project(self, project_root: Path) -> "PourConfig":
        """Config for the project-local root <project>/.pour."""
        home = Path(project_root) / PROJECT_DIR_NAME
        settings = {name: getattr(self, name) for name in TUNABLES}
        return replace(
            PourConfig.at(home, **settings),
            system_path=self.system_path,
            target=self.target,
            global_home=self.home,
        )

    @property
    def is_project(self) -> bool:
        return self.global_home is not None

    def ensure_dirs(self) -> None:
        """Ensure all required directories exist."""
        for path in (
            self.home,
            self.bin_dir,
            self.opt_dir,
            self.cellar_dir,
            self.cache_dir,
            self.tmp_dir,
            self.logs_dir,
        ):
            path.mkdir(parents=True, exist_ok=True)


def load_overrides(path: Path) -> dict:
    """Read tunable settings from a YAML file, if it exists.

    A 'target' key holding a bottle tag (e.g. 'arm64_sonoma') replaces the
    detected platform. Raises UserError naming the file when it is malformed.
    """
    if not path.exists():
        return {}

    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError("expected a mapping of settings")

        overrides = {name: data[name] for name in TUNABLES if name in data}
        if "target" in data:
            overrides["target"] = PlatformInfo.from_tag(str(data["target"]))
    except (yaml.YAMLError, ValueError) as e:
        raise UserError(
            f"Invalid configuration in {path}: {e}", context={"path": str(path)}
        ) from e
    return overrides
