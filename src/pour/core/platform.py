"""Target platform detection and bottle tag ranking."""

from __future__ import annotations

import platform
from dataclasses import dataclass

from pour.models.formula import Bottle

# Bottle tag codenames and the macOS release they were built on
MACOS_RELEASES = {
    "tahoe": 26.0,
    "sequoia": 15.0,
    "sonoma": 14.0,
    "ventura": 13.0,
    "monterey": 12.0,
    "big_sur": 11.0,
    "catalina": 10.15,
    "mojave": 10.14,
}

ARCH_ALIASES = {
    "x86_64": "x86_64",
    "amd64": "x86_64",
    "arm64": "arm64",
    "aarch64": "arm64",
}


@dataclass(frozen=True)
class PlatformInfo:
    """The single target triple the engine installs for."""

    os: str  # darwin, linux
    arch: str  # arm64, x86_64
    os_version: float | None = None  # macOS release, e.g. 15.0

    @classmethod
    def detect(cls) -> "PlatformInfo":
        """Detect the current platform."""
        system = platform.system().lower()
        machine = platform.machine().lower()
        arch = ARCH_ALIASES.get(machine, machine)

        os_version = None
        if system == "darwin":
            release = platform.mac_ver()[0]
            if release:
                parts = [int(p) for p in release.split(".")[:2] if p.isdigit()]
                if parts and parts[0] >= 11:
                    os_version = float(parts[0])
                elif len(parts) == 2:
                    os_version = float(f"{parts[0]}.{parts[1]}")

        return cls(os=system, arch=arch, os_version=os_version)

    @classmethod
    def from_tag(cls, tag: str) -> "PlatformInfo":
        """Build a target from a bottle tag such as 'arm64_sequoia'."""
        parsed = parse_tag(tag)
        if parsed is None or parsed.os == "any":
            raise ValueError(f"Not a platform-specific bottle tag: {tag}")
        return parsed

    @property
    def tag(self) -> str:
        """The bottle tag this target would be built under."""
        if self.os == "linux":
            return f"{self.arch}_linux"
        for codename, release in MACOS_RELEASES.items():
            if release == self.os_version:
                return codename if self.arch == "x86_64" else f"{self.arch}_{codename}"
        return f"{self.arch}_{self.os}"


def parse_tag(tag: str) -> PlatformInfo | None:
    """Parse a bottle tag into the platform it targets.

    Supports:
    - all                 (any platform)
    - arm64_sonoma        (arch + macOS codename)
    - sonoma              (Intel macOS codename)
    - x86_64_linux / arm64_linux
    """
    tag = tag.lower()
    if tag == "all":
        return PlatformInfo(os="any", arch="any")

    if tag.endswith("_linux"):
        arch = ARCH_ALIASES.get(tag[: -len("_linux")])
        return PlatformInfo(os="linux", arch=arch) if arch else None

    arch = "x86_64"
    codename = tag
    for prefix in ("arm64_", "x86_64_"):
        if tag.startswith(prefix):
            arch = prefix[:-1]
            codename = tag[len(prefix):]
            break

    release = MACOS_RELEASES.get(codename)
    if release is None:
        return None
    return PlatformInfo(os="darwin", arch=arch, os_version=release)


def score_bottle(bottle: Bottle, target: PlatformInfo) -> int:
    """Score a bottle for the target. Higher is better, -1 means incompatible."""
    built_for = parse_tag(bottle.platform)
    if built_for is None:
        return -1

    # Platform-independent bottles only win when nothing specific matches
    if built_for.os == "any":
        return 1

    if built_for.os != target.os or built_for.arch != target.arch:
        return -1

    if built_for.os == "linux":
        return 100

    # A bottle built on a newer macOS than the target may not load
    if target.os_version is not None and built_for.os_version > target.os_version:
        return -1

    return 100 + int(built_for.os_version * 10)


def find_best_bottle(bottles: list[Bottle], target: PlatformInfo) -> Bottle | None:
    """Find the highest-ranked compatible bottle for the target."""
    scored = []
    for bottle in bottles:
        score = score_bottle(bottle, target)
        if score >= 0:
            scored.append((score, bottle))

    if not scored:
        return None

    scored.sort(key=lambda x: x[0], reverse=True)
    return scored[0][1]
