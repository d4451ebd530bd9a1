"""Install, remove, upgrade and switch package versions under one root."""

from __future__ import annotations

import os
import shutil
import threading
import time
from datetime import datetime
from pathlib import Path

from pour.core.checksum import calculate_sha256, verify_sha256
from pour.core.config import PourConfig
from pour.core.errors import (
    AlreadyInstalled,
    ChecksumMismatch,
    FormulaNotFound,
    InstallationFailed,
    NotFound,
    OperationCancelled,
    wrap_os_error,
)
from pour.core.events import (
    EventSink,
    ExtractionStarted,
    ExtractionUpdated,
    InstallCompleted,
    InstallFailed,
    InstallStarted,
    LinkingStarted,
    LinkingUpdated,
    NullSink,
    RepairStarted,
    RepairUpdated,
)
from pour.core.extractor import extract_archive
from pour.core.fetcher import ArchiveFetcher
from pour.core.logging import get_logger
from pour.core.paths import PathLayout, resolve_link_target
from pour.core.receipt import load_receipt, receipt_is_damaged, save_receipt
from pour.core.repair import BinaryRepairer, RepairReport
from pour.models.formula import Formula
from pour.models.package import InstallationStatus, InstalledPackage, InstallReceipt

log = get_logger(__name__)


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


def _check_cancelled(cancel: threading.Event | None) -> None:
    if cancel is not None and cancel.is_set():
        raise OperationCancelled("install")


class Installer:
    """Manages installed versions and the symlink farm of one root."""

    def __init__(
        self,
        config: PourConfig,
        fetcher: ArchiveFetcher | None = None,
        repairer: BinaryRepairer | None = None,
    ):
        self.config = config
        self.layout = PathLayout(config)
        self._fetcher = fetcher
        self.repairer = repairer or BinaryRepairer(config)

    @property
    def fetcher(self) -> ArchiveFetcher:
        if self._fetcher is None:
            self._fetcher = ArchiveFetcher(self.config)
        return self._fetcher

    def close(self) -> None:
        if self._fetcher is not None:
            self._fetcher.close()

    def bottle_cache_path(self, formula: Formula, platform_tag: str) -> Path:
        return (
            self.config.cache_dir
            / "bottles"
            / f"{formula.name}--{formula.version}.{platform_tag}.bottle.tar.gz"
        )

    def fetch_bottle(
        self,
        formula: Formula,
        sink: EventSink | None = None,
        cancel: threading.Event | None = None,
    ) -> Path:
        """Download the preferred bottle for the configured target.

        A previously downloaded bottle with the right digest is reused.
        """
        bottle = formula.preferred_bottle(self.config.target)
        if bottle is None:
            raise InstallationFailed(
                formula.name, f"no bottle available for {self.config.target.tag}"
            )

        destination = self.bottle_cache_path(formula, bottle.platform)
        if destination.exists():
            try:
                verify_sha256(destination, bottle.sha256)
                log.debug("bottle_cache_hit", package=formula.name, path=str(destination))
                return destination
            except ChecksumMismatch:
                destination.unlink()

        url = formula.bottle_url(bottle, self.config.bottle_domain)
        return self.fetcher.fetch(
            url, destination, expected_sha256=bottle.sha256, sink=sink, cancel=cancel
        )

    def install(
        self,
        formula: Formula,
        archive_path: Path | None = None,
        sink: EventSink | None = None,
        cancel: threading.Event | None = None,
    ) -> InstalledPackage:
        """Install one version of a package from a bottle archive.

        Without archive_path the preferred bottle is fetched first. On any
        failure after the version directory is created, that directory and
        every link made for it are removed before the error propagates.
        """
        sink = sink or NullSink()
        name, version = formula.name, formula.version
        version_dir = self.layout.version_dir(name, version)
        started = time.monotonic()

        sink.emit(InstallStarted(name, version))
        log.info("install_start", package=name, version=version)

        try:
            if version_dir.exists():
                raise AlreadyInstalled(name, version, context={"path": str(version_dir)})

            if archive_path is None:
                archive_path = self.fetch_bottle(formula, sink=sink, cancel=cancel)
            archive_path = Path(archive_path)
            if not archive_path.is_file():
                raise NotFound(path=str(archive_path))

            try:
                version_dir.parent.mkdir(parents=True, exist_ok=True)
                # The exclusive create is what keeps concurrent installs apart
                version_dir.mkdir(exist_ok=False)
            except FileExistsError as e:
                raise AlreadyInstalled(name, version, context={"path": str(version_dir)}) from e
            except OSError as e:
                raise wrap_os_error(e, version_dir) from e
        except Exception as e:
            sink.emit(InstallFailed(name, version, e))
            log.warning("install_failed", package=name, version=version, error=str(e))
            raise

        changed_links: list[tuple[Path, str | None]] = []
        try:
            try:
                package, report = self._populate(
                    formula, archive_path, version_dir, changed_links, sink, cancel
                )
            except OSError as e:
                raise wrap_os_error(e, version_dir) from e
        except BaseException as e:
            self._rollback(version_dir, changed_links)
            sink.emit(InstallFailed(name, version, e))
            log.error(
                "install_failed",
                package=name,
                version=version,
                error=str(e),
                duration_ms=_elapsed_ms(started),
            )
            raise

        sink.emit(InstallCompleted(name, version, report))
        log.info(
            "install_complete",
            package=name,
            version=version,
            binaries=len(package.binaries),
            duration_ms=_elapsed_ms(started),
        )
        return package

    def _populate(
        self,
        formula: Formula,
        archive_path: Path,
        version_dir: Path,
        changed_links: list[tuple[Path, str | None]],
        sink: EventSink,
        cancel: threading.Event | None,
    ) -> tuple[InstalledPackage, RepairReport]:
        def extraction_progress(done: int, total: int) -> None:
            if done == 0:
                sink.emit(ExtractionStarted(total))
            else:
                sink.emit(ExtractionUpdated(done, total))

        def repair_progress(done: int, total: int) -> None:
            if done == 0:
                sink.emit(RepairStarted(total))
            else:
                sink.emit(RepairUpdated(done, total))

        extract_archive(archive_path, version_dir, on_progress=extraction_progress, cancel=cancel)
        _check_cancelled(cancel)

        report = self.repairer.repair_tree(version_dir, on_progress=repair_progress)
        if report.failed:
            log.warning(
                "repair_incomplete",
                package=formula.name,
                version=formula.version,
                summary=report.summary,
                failures=[str(f.path) for f in report.failures],
            )
        _check_cancelled(cancel)

        binaries = self.layout.exposed_binaries(version_dir)
        plan = []
        for binary in binaries:
            plan.append((self.layout.pinned_link(binary.name, formula.version), binary))
            plan.append((self.layout.bin_link(binary.name), binary))
        plan.append((self.layout.opt_link(formula.name), version_dir))

        sink.emit(LinkingStarted(len(plan)))
        for linked, (link_path, target) in enumerate(plan, 1):
            previous = os.readlink(link_path) if link_path.is_symlink() else None
            self.layout.link(link_path, target)
            changed_links.append((link_path, previous))
            sink.emit(LinkingUpdated(linked, len(plan)))

        receipt = InstallReceipt(
            name=formula.name,
            version=formula.version,
            installed_at=datetime.now(),
            binaries=[b.name for b in binaries],
            bottle_sha256=calculate_sha256(archive_path),
            repair_summary=report.summary,
        )
        save_receipt(version_dir, receipt)

        package = InstalledPackage(
            name=formula.name,
            version=formula.version,
            path=version_dir,
            binaries=receipt.binaries,
            is_default=True,
            receipt=receipt,
        )
        return package, report

    def _rollback(self, version_dir: Path, changed_links: list[tuple[Path, str | None]]) -> None:
        for link_path, previous in reversed(changed_links):
            try:
                if previous is None:
                    link_path.unlink(missing_ok=True)
                else:
                    self.layout.link(link_path, link_path.parent / previous)
            except OSError as e:
                log.warning("rollback_link_failed", path=str(link_path), error=str(e))

        shutil.rmtree(version_dir, ignore_errors=True)
        if version_dir.exists():
            log.warning("rollback_incomplete", path=str(version_dir))

    def uninstall(self, name: str, version: str | None = None) -> list[str]:
        """Remove one version, or every version of a package.

        Removing a single version leaves the default and opt links alone,
        even if they now dangle; 'switch' repoints them. Returns the removed
        versions.
        """
        package_dir = self.layout.package_dir(name)
        if version is not None:
            version_dir = self.layout.version_dir(name, version)
        versions = self.layout.installed_versions(name)

        try:
            if version is None:
                if not versions:
                    raise FormulaNotFound(name)
                self._remove_links_into(package_dir, lambda link: True)
                opt = self.layout.opt_link(name)
                if opt.is_symlink():
                    opt.unlink()
                shutil.rmtree(package_dir)
                removed = versions
            else:
                if version not in versions:
                    raise FormulaNotFound(name, version)
                self._remove_links_into(
                    version_dir, lambda link: link.name.endswith(f"@{version}")
                )
                shutil.rmtree(version_dir)
                if not any(package_dir.iterdir()):
                    package_dir.rmdir()
                removed = [version]
        except OSError as e:
            raise wrap_os_error(e, package_dir) from e

        log.info("uninstall_complete", package=name, versions=removed)
        return removed

    def _remove_links_into(self, directory: Path, wanted) -> None:
        if not self.layout.bin_dir.is_dir():
            return
        for link in self.layout.bin_dir.iterdir():
            if wanted(link) and self.layout.points_into(link, directory):
                link.unlink()

    def upgrade_package(
        self,
        old: InstalledPackage,
        new: Formula,
        archive_path: Path | None = None,
        sink: EventSink | None = None,
        cancel: threading.Event | None = None,
    ) -> InstalledPackage:
        """Install the new version, then remove the old one.

        If the new install fails, the old version is left exactly as it was.
        """
        package = self.install(new, archive_path, sink=sink, cancel=cancel)
        if old.version != new.version:
            old_dir = self.layout.version_dir(old.name, old.version)
            # Commands the new version no longer ships still have default links here
            try:
                self._remove_links_into(old_dir, lambda link: True)
            except OSError as e:
                raise wrap_os_error(e, old_dir) from e
            self.uninstall(old.name, old.version)
        log.info("upgrade_complete", package=new.name, old=old.version, new=new.version)
        return package

    def switch(self, name: str, version: str) -> InstalledPackage:
        """Make an installed version the default one."""
        version_dir = self.layout.version_dir(name, version)
        if not version_dir.is_dir():
            raise FormulaNotFound(name, version)

        binaries = self.layout.exposed_binaries(version_dir)
        for binary in binaries:
            self.layout.link(self.layout.bin_link(binary.name), binary)
        self.layout.link(self.layout.opt_link(name), version_dir)

        log.info("switch_complete", package=name, version=version)
        return self.installed_package(name, version)

    def verify_installation(self, formula) -> InstallationStatus:
        """Recompute the status of formula.name at formula.version from disk."""
        name, version = formula.name, formula.version
        version_dir = self.layout.version_dir(name, version)
        if not version_dir.is_dir():
            return InstallationStatus.NOT_INSTALLED

        binaries = self.layout.exposed_binaries(version_dir)
        present = {b.name for b in binaries}

        if receipt_is_damaged(version_dir):
            return InstallationStatus.corrupted("unreadable install receipt")
        receipt = load_receipt(version_dir)
        if receipt is not None:
            missing = [b for b in receipt.binaries if b not in present]
            if missing:
                return InstallationStatus.corrupted(f"missing binary {missing[0]}")

        # Pinned links that outlived their binary
        if self.layout.bin_dir.is_dir():
            for link in sorted(self.layout.bin_dir.iterdir()):
                if (
                    link.name.endswith(f"@{version}")
                    and self.layout.points_into(link, version_dir)
                    and not link.exists()
                ):
                    return InstallationStatus.corrupted(f"{link.name} points at a missing binary")

        for binary in binaries:
            pinned = self.layout.pinned_link(binary.name, version)
            if not pinned.is_symlink():
                return InstallationStatus.corrupted(f"missing link {pinned.name}")
            if resolve_link_target(pinned) != Path(os.path.abspath(binary)):
                return InstallationStatus.corrupted(f"{pinned.name} does not point at {version}")
            if not self.layout.bin_link(binary.name).exists():
                return InstallationStatus.corrupted(f"default link {binary.name} is broken")

        if not self.layout.opt_link(name).exists():
            return InstallationStatus.corrupted(f"opt link for {name} is broken")

        return InstallationStatus.INSTALLED

    def repair_installation(
        self, name: str, version: str | None = None
    ) -> dict[str, RepairReport]:
        """Re-run the repair pass over installed versions in place."""
        versions = self.layout.installed_versions(name)
        if version is not None:
            if version not in versions:
                raise FormulaNotFound(name, version)
            versions = [version]
        elif not versions:
            raise FormulaNotFound(name)

        reports = {}
        for v in versions:
            reports[v] = self.repairer.repair_tree(self.layout.version_dir(name, v))
        return reports

    def installed_package(self, name: str, version: str) -> InstalledPackage:
        version_dir = self.layout.version_dir(name, version)
        if not version_dir.is_dir():
            raise FormulaNotFound(name, version)
        return InstalledPackage(
            name=name,
            version=version,
            path=version_dir,
            binaries=[b.name for b in self.layout.exposed_binaries(version_dir)],
            is_default=self.layout.default_version(name) == version,
            receipt=load_receipt(version_dir),
        )

    def installed_packages(self) -> list[InstalledPackage]:
        """Every installed (name, version), sorted by name then version."""
        return [
            self.installed_package(name, version)
            for name in self.layout.installed_names()
            for version in self.layout.installed_versions(name)
        ]
