"""Resolved formula records handed to the engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from pour.models.spec import is_path_component

if TYPE_CHECKING:
    from pour.core.platform import PlatformInfo


class DependencyKind(Enum):
    """How a dependency is needed."""

    REQUIRED = "required"
    RECOMMENDED = "recommended"
    OPTIONAL = "optional"
    BUILD = "build"


@dataclass(frozen=True)
class Dependency:
    """A named dependency of a formula."""

    name: str
    kind: DependencyKind = DependencyKind.REQUIRED

    def to_dict(self) -> dict:
        return {"name": self.name, "kind": self.kind.value}

    @classmethod
    def from_dict(cls, data: dict | str) -> "Dependency":
        # Bare strings are accepted as required dependencies
        if isinstance(data, str):
            return cls(name=data)
        return cls(name=data["name"], kind=DependencyKind(data.get("kind", "required")))


@dataclass(frozen=True)
class Bottle:
    """A prebuilt archive for one platform, identified by its digest."""

    sha256: str
    platform: str  # bottle tag, e.g. arm64_sequoia
    url: str | None = None  # explicit location, overrides the computed one

    def to_dict(self) -> dict:
        data = {"sha256": self.sha256, "platform": self.platform}
        if self.url:
            data["url"] = self.url
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Bottle":
        return cls(sha256=data["sha256"], platform=data["platform"], url=data.get("url"))


@dataclass(frozen=True)
class Formula:
    """The resolved metadata record for one package version."""

    name: str
    version: str
    description: str = ""
    homepage: str = ""
    url: str = ""
    sha256: str = ""
    dependencies: tuple[Dependency, ...] = field(default_factory=tuple)
    bottles: tuple[Bottle, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        if not self.name or not self.name.strip():
            raise ValueError("Formula name must not be empty")
        if not self.version or not self.version.strip():
            raise ValueError(f"Formula {self.name} has an empty version")
        if not is_path_component(self.name):
            raise ValueError(f"Formula name {self.name!r} is not a valid directory name")
        if not is_path_component(self.version):
            raise ValueError(f"Formula {self.name} has an unusable version {self.version!r}")
        # Accept lists from callers while keeping the record hashable
        object.__setattr__(self, "dependencies", tuple(self.dependencies))
        object.__setattr__(self, "bottles", tuple(self.bottles))

    def preferred_bottle(self, target: "PlatformInfo") -> Bottle | None:
        """Return the best bottle for the target, if any is compatible."""
        from pour.core.platform import find_best_bottle

        return find_best_bottle(list(self.bottles), target)

    def bottle_url(self, bottle: Bottle, domain: str) -> str:
        """Content address of a bottle.

        Versioned names map onto nested repository paths:
          openssl@3    -> openssl/3
          python@3.11  -> python/3.11
          tree         -> tree
        """
        if bottle.url:
            return bottle.url

        if "@" in self.name:
            package, slot = self.name.split("@", 1)
            path = f"{package.lower()}/{slot}"
        else:
            path = self.name.lower()

        return f"{domain.rstrip('/')}/{path}/blobs/sha256:{bottle.sha256}"

    def required_dependencies(self) -> list[Dependency]:
        """Dependencies needed at runtime."""
        return [
            d
            for d in self.dependencies
            if d.kind in (DependencyKind.REQUIRED, DependencyKind.RECOMMENDED)
        ]

    def to_dict(self) -> dict:
        """Convert to a dictionary for YAML/JSON serialization."""
        return {
            "name": self.name,
            "version": self.version,
            "description": self.description,
            "homepage": self.homepage,
            "url": self.url,
            "sha256": self.sha256,
            "dependencies": [d.to_dict() for d in self.dependencies],
            "bottles": [b.to_dict() for b in self.bottles],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Formula":
        """Create a Formula from a dictionary."""
        return cls(
            name=str(data["name"]),
            version=str(data["version"]),
            description=data.get("description") or data.get("desc") or "",
            homepage=data.get("homepage", ""),
            url=data.get("url", ""),
            sha256=data.get("sha256", ""),
            dependencies=tuple(Dependency.from_dict(d) for d in data.get("dependencies", [])),
            bottles=tuple(Bottle.from_dict(b) for b in data.get("bottles", [])),
        )
