"""User-facing name[@version] package tokens."""

from __future__ import annotations

import re
from dataclasses import dataclass

NAME_PATTERN = re.compile(r"^[A-Za-z0-9._-]+$")

RESERVED_COMPONENTS = frozenset({".", ".."})


def is_path_component(value: str) -> bool:
    """True if value names exactly one directory entry below its parent."""
    return (
        bool(value)
        and value not in RESERVED_COMPONENTS
        and "/" not in value
        and "\\" not in value
        and "\0" not in value
    )


@dataclass(frozen=True)
class PackageSpecification:
    """A parsed package token such as 'wget' or 'wget@1.25.0'."""

    name: str
    version: str | None = None

    @classmethod
    def parse(cls, spec: str) -> "PackageSpecification":
        """Parse a token, splitting on the first '@' only.

        'a@1.0@extra' keeps '1.0@extra' as the version, and 'a@' means
        no version at all.
        """
        name, sep, version = spec.partition("@")
        name = name.strip()
        version = version.strip() if sep else ""
        return cls(name=name, version=version or None)

    @property
    def is_valid(self) -> bool:
        return NAME_PATTERN.match(self.name) is not None and is_path_component(self.name)

    @property
    def full_specification(self) -> str:
        if self.version:
            return f"{self.name}@{self.version}"
        return self.name

    def __str__(self) -> str:
        return self.full_specification
