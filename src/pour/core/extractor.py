"""Bottle archive extraction."""

from __future__ import annotations

import copy
import os
import stat
import tarfile
import threading
from pathlib import Path, PurePosixPath
from typing import Callable

from pour.core.errors import ExtractionFailed, OperationCancelled

# Bottles are laid out as <name>/<version>/...
BOTTLE_PREFIX_DEPTH = 2


def is_executable(path: Path) -> bool:
    """Check if a file is likely an executable binary."""
    if not path.is_file():
        return False

    # Check if it's already marked executable
    if os.access(path, os.X_OK):
        return True

    # Check for common binary signatures
    try:
        with open(path, "rb") as f:
            header = f.read(4)
    except OSError:
        return False

    return (
        header == b"\x7fELF"
        or header
        in (
            b"\xfe\xed\xfa\xce",  # 32-bit
            b"\xfe\xed\xfa\xcf",  # 64-bit
            b"\xca\xfe\xba\xbe",  # Universal
            b"\xcf\xfa\xed\xfe",  # 64-bit reversed
            b"\xce\xfa\xed\xfe",  # 32-bit reversed
        )
        or header[:2] == b"#!"
    )


def make_executable(path: Path) -> None:
    """Make a file executable."""
    current = path.stat().st_mode
    path.chmod(current | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)


def shared_prefix_depth(names: list[str]) -> int:
    """How many leading components to strip from a bottle's member names.

    Returns 2 when every member lies under one <name>/<version>/ prefix,
    otherwise 0.
    """
    prefix = None
    for name in names:
        parts = PurePosixPath(name).parts
        if len(parts) <= BOTTLE_PREFIX_DEPTH:
            continue
        if prefix is None:
            prefix = parts[:BOTTLE_PREFIX_DEPTH]
        elif parts[:BOTTLE_PREFIX_DEPTH] != prefix:
            return 0

    if prefix is None:
        return 0

    # Shallow entries must be the prefix directories themselves
    for name in names:
        parts = PurePosixPath(name).parts
        if len(parts) <= BOTTLE_PREFIX_DEPTH and parts != prefix[: len(parts)]:
            return 0
    return BOTTLE_PREFIX_DEPTH


def _strip(name: str, depth: int) -> str | None:
    parts = PurePosixPath(name).parts
    if len(parts) <= depth:
        return None
    return "/".join(parts[depth:])


def extract_archive(
    archive_path: Path,
    dest_dir: Path,
    strip_prefix: int | None = None,
    on_progress: Callable[[int, int], None] | None = None,
    cancel: threading.Event | None = None,
) -> int:
    """Extract a (possibly compressed) tar archive into dest_dir.

    strip_prefix=None detects the bottle <name>/<version>/ prefix. Returns
    the number of members written. Callers own cleanup on failure.
    """
    dest_dir.mkdir(parents=True, exist_ok=True)
    written = 0

    try:
        with tarfile.open(archive_path, "r:*") as tar:
            members = tar.getmembers()
            depth = (
                shared_prefix_depth([m.name for m in members])
                if strip_prefix is None
                else strip_prefix
            )
            total = len(members)
            if on_progress:
                on_progress(0, total)

            for index, member in enumerate(members, 1):
                if cancel is not None and cancel.is_set():
                    raise OperationCancelled("extraction")

                name = _strip(member.name, depth)
                if name is not None:
                    entry = copy.copy(member)
                    entry.name = name
                    if entry.islnk():
                        # Hard link targets are archive paths too
                        entry.linkname = _strip(entry.linkname, depth) or entry.linkname
                    tar.extract(entry, dest_dir, filter="data")
                    written += 1

                if on_progress:
                    on_progress(index, total)

    except (tarfile.TarError, OSError) as e:
        raise ExtractionFailed(str(e), archive=str(archive_path)) from e

    return written
