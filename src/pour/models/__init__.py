"""Data models for pour."""

from pour.models.formula import Bottle, Dependency, DependencyKind, Formula
from pour.models.package import (
    InstallationStatus,
    InstalledPackage,
    InstallReceipt,
    StatusKind,
)
from pour.models.spec import PackageSpecification

__all__ = [
    "Bottle",
    "Dependency",
    "DependencyKind",
    "Formula",
    "InstallationStatus",
    "InstalledPackage",
    "InstallReceipt",
    "PackageSpecification",
    "StatusKind",
]
