"""Installed package records and their on-disk status."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path


@dataclass
class InstallReceipt:
    """Metadata written next to an installed version."""

    name: str
    version: str
    installed_at: datetime
    binaries: list[str] = field(default_factory=list)
    bottle_sha256: str = ""
    repair_summary: str = ""

    def to_dict(self) -> dict:
        """Convert to dictionary for YAML serialization."""
        return {
            "name": self.name,
            "version": self.version,
            "installed_at": self.installed_at.isoformat(),
            "binaries": self.binaries,
            "bottle_sha256": self.bottle_sha256,
            "repair_summary": self.repair_summary,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "InstallReceipt":
        """Create InstallReceipt from dictionary."""
        installed_at = data.get("installed_at")
        if isinstance(installed_at, str):
            installed_at = datetime.fromisoformat(installed_at)
        elif installed_at is None:
            installed_at = datetime.now()

        return cls(
            name=str(data["name"]),
            version=str(data["version"]),
            installed_at=installed_at,
            binaries=list(data.get("binaries") or []),
            bottle_sha256=data.get("bottle_sha256", ""),
            repair_summary=data.get("repair_summary", ""),
        )


@dataclass
class InstalledPackage:
    """One (name, version) pair living under Cellar/<name>/<version>."""

    name: str
    version: str
    path: Path
    binaries: list[str] = field(default_factory=list)
    is_default: bool = False
    receipt: InstallReceipt | None = None

    @property
    def full_specification(self) -> str:
        return f"{self.name}@{self.version}"


class StatusKind(Enum):
    NOT_INSTALLED = "not_installed"
    INSTALLED = "installed"
    CORRUPTED = "corrupted"


@dataclass(frozen=True)
class InstallationStatus:
    """Health of one installed version, always recomputed from disk."""

    kind: StatusKind
    reason: str | None = None

    @classmethod
    def corrupted(cls, reason: str) -> "InstallationStatus":
        return cls(StatusKind.CORRUPTED, reason)

    @property
    def is_installed(self) -> bool:
        return self.kind is StatusKind.INSTALLED

    @property
    def is_corrupted(self) -> bool:
        return self.kind is StatusKind.CORRUPTED

    def __str__(self) -> str:
        if self.reason:
            return f"{self.kind.value} ({self.reason})"
        return self.kind.value


InstallationStatus.NOT_INSTALLED = InstallationStatus(StatusKind.NOT_INSTALLED)
InstallationStatus.INSTALLED = InstallationStatus(StatusKind.INSTALLED)
