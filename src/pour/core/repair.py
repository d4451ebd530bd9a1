"""Relocation of placeholder paths inside installed binaries."""

from __future__ import annotations

import os
import subprocess
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Protocol

from pour.core.config import PourConfig
from pour.core.logging import get_logger
from pour.core.macho import LinkInfo, MachOEditor, MachOError, is_macho

log = get_logger(__name__)

PREFIX_PLACEHOLDER = "@@HOMEBREW_PREFIX@@"
CELLAR_PLACEHOLDER = "@@HOMEBREW_CELLAR@@"
PLACEHOLDERS = (PREFIX_PLACEHOLDER, CELLAR_PLACEHOLDER)

LIBRARY_SUFFIXES = {".dylib", ".so"}
BUNDLE_SUFFIXES = {".framework", ".bundle"}

# Never Mach-O, skipped when walking frameworks and bundles
SKIP_SUFFIXES = {
    ".txt", ".md", ".rst", ".h", ".hpp", ".c", ".cc", ".cpp", ".m", ".swift",
    ".py", ".pyc", ".rb", ".pl", ".sh", ".plist", ".json", ".xml", ".yaml",
    ".yml", ".html", ".css", ".js", ".strings", ".nib", ".png", ".jpg",
    ".icns", ".tiff", ".modulemap", ".swiftmodule", ".swiftinterface", ".tbd",
}


class SigningError(Exception):
    """Ad-hoc signing of a rewritten binary failed."""

    pass


class BinaryEditor(Protocol):
    def read_link_info(self, path: Path) -> LinkInfo: ...

    def rewrite(self, path: Path, replacements: dict[str, str]) -> int: ...


class Signer(Protocol):
    def sign(self, path: Path) -> None: ...


class CodesignSigner:
    """Re-applies an ad-hoc signature with the system codesign tool."""

    def __init__(self, codesign: str = "codesign"):
        self.codesign = codesign

    def _run(self, *args: str) -> subprocess.CompletedProcess:
        try:
            return subprocess.run(
                [self.codesign, *args], capture_output=True, text=True, check=False
            )
        except FileNotFoundError as e:
            raise SigningError(f"{self.codesign} not found") from e

    def sign(self, path: Path) -> None:
        # Unsigned files make --remove-signature fail; that is fine
        removed = self._run("--remove-signature", str(path))
        if removed.returncode != 0:
            log.debug("signature_remove_skipped", path=str(path), error=removed.stderr.strip())

        signed = self._run("--force", "--sign", "-", str(path))
        if signed.returncode != 0:
            raise SigningError(
                signed.stderr.strip() or f"codesign exited with status {signed.returncode}"
            )


class RepairStatus(Enum):
    FIXED = "fixed"
    FAILED = "failed"
    UNCHANGED = "unchanged"


@dataclass
class RepairOutcome:
    path: Path
    status: RepairStatus
    rewritten: bool = False  # paths were rewritten, even if signing then failed
    reason: str | None = None


@dataclass
class RepairReport:
    """Aggregate result of one repair pass over a tree."""

    scanned: int = 0
    attempted: int = 0
    fixed: int = 0
    rewritten: int = 0
    failures: list[RepairOutcome] = field(default_factory=list)

    def record(self, outcome: RepairOutcome) -> None:
        self.scanned += 1
        if outcome.rewritten:
            self.rewritten += 1
        if outcome.status is RepairStatus.UNCHANGED:
            return
        self.attempted += 1
        if outcome.status is RepairStatus.FIXED:
            self.fixed += 1
        else:
            self.failures.append(outcome)

    @property
    def failed(self) -> int:
        return len(self.failures)

    @property
    def all_failed(self) -> bool:
        return self.attempted > 0 and self.fixed == 0

    @property
    def summary(self) -> str:
        return f"{self.fixed} of {self.attempted} files repaired"


class BinaryRepairer:
    """Finds binaries carrying bottle placeholders and points them at real roots."""

    def __init__(
        self,
        config: PourConfig,
        editor: BinaryEditor | None = None,
        signer: Signer | None = None,
    ):
        self.config = config
        self.editor = editor or MachOEditor()
        self.signer = signer or CodesignSigner()
        self.replacements = {
            PREFIX_PLACEHOLDER: os.path.abspath(config.home),
            CELLAR_PLACEHOLDER: os.path.abspath(config.cellar_dir),
        }

    def scan(self, package_dir: Path) -> list[Path]:
        """Files under a version directory that may need repair."""
        package_dir = Path(package_dir)
        found: list[Path] = []
        seen: set[str] = set()

        def add(path: Path) -> None:
            real = os.path.realpath(path)
            if real not in seen:
                seen.add(real)
                found.append(path)

        bin_dir = package_dir / "bin"
        if bin_dir.is_dir():
            for path in sorted(bin_dir.rglob("*")):
                if path.is_file():
                    add(path)

        lib_dir = package_dir / "lib"
        if lib_dir.is_dir():
            for path in sorted(lib_dir.rglob("*")):
                if path.suffix in LIBRARY_SUFFIXES and path.is_file():
                    add(path)

        for bundle in sorted(package_dir.rglob("*")):
            if bundle.suffix not in BUNDLE_SUFFIXES or not bundle.is_dir():
                continue
            for path in sorted(bundle.rglob("*")):
                if not path.is_file() or path.suffix.lower() in SKIP_SUFFIXES:
                    continue
                if (
                    os.access(path, os.X_OK)
                    or path.suffix in LIBRARY_SUFFIXES
                    or not path.suffix
                ):
                    add(path)

        return found

    def needs_repair(self, path: Path) -> bool:
        """True if a placeholder appears in the file's link paths."""
        if not is_macho(path):
            return False
        info = self.editor.read_link_info(path)
        return any(info.contains(token) for token in PLACEHOLDERS)

    def repair(self, path: Path) -> RepairOutcome:
        """Rewrite placeholders in one file and re-sign it."""
        path = Path(path)
        try:
            if not self.needs_repair(path):
                return RepairOutcome(path, RepairStatus.UNCHANGED)
            changed = self.editor.rewrite(path, self.replacements)
        except (MachOError, OSError) as e:
            return RepairOutcome(path, RepairStatus.FAILED, reason=str(e))

        if not changed:
            return RepairOutcome(path, RepairStatus.UNCHANGED)

        try:
            self.signer.sign(path)
        except SigningError as e:
            return RepairOutcome(path, RepairStatus.FAILED, rewritten=True, reason=str(e))

        return RepairOutcome(path, RepairStatus.FIXED, rewritten=True)

    def repair_tree(
        self,
        package_dir: Path,
        on_progress: Callable[[int, int], None] | None = None,
    ) -> RepairReport:
        """Repair every candidate under package_dir.

        on_progress(processed, total) is called once with 0 before the first
        file and after every file. Per-file failures are collected, not raised.
        """
        candidates = self.scan(package_dir)
        total = len(candidates)
        report = RepairReport()

        if on_progress:
            on_progress(0, total)

        for processed, path in enumerate(candidates, 1):
            outcome = self.repair(path)
            report.record(outcome)
            if outcome.status is RepairStatus.FAILED:
                log.warning("repair_file_failed", path=str(path), reason=outcome.reason)
            if on_progress:
                on_progress(processed, total)

        log.info(
            "repair_complete",
            path=str(package_dir),
            scanned=report.scanned,
            fixed=report.fixed,
            failed=report.failed,
        )
        return report
