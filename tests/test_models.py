"""Tests for package specifications, formula records and receipts."""

from datetime import datetime

import pytest

from conftest import SEQUOIA_ARM
from pour.models.formula import Bottle, Dependency, DependencyKind, Formula
from pour.models.package import InstallationStatus, InstallReceipt, StatusKind
from pour.models.spec import PackageSpecification


class TestPackageSpecification:
    @pytest.mark.parametrize(
        "token, name, version",
        [
            ("wget", "wget", None),
            ("wget@1.25.0", "wget", "1.25.0"),
            ("  wget @ 1.25.0 ", "wget", "1.25.0"),
            ("openssl@3@extra", "openssl", "3@extra"),
            ("wget@", "wget", None),
            ("@1.0", "", "1.0"),
            ("@", "", None),
        ],
    )
    def test_parse(self, token, name, version):
        spec = PackageSpecification.parse(token)

        assert spec.name == name
        assert spec.version == version

    @pytest.mark.parametrize("token", ["wget", "python3.12", "lib_foo-bar", "wget@1.0"])
    def test_valid_names(self, token):
        assert PackageSpecification.parse(token).is_valid

    @pytest.mark.parametrize(
        "token", ["", "@1.0", "bad name", "foo/bar", "wget!", ".", "..", "..@1.0"]
    )
    def test_invalid_names(self, token):
        assert not PackageSpecification.parse(token).is_valid

    def test_full_specification(self):
        assert PackageSpecification("wget", "1.25.0").full_specification == "wget@1.25.0"
        assert str(PackageSpecification("wget")) == "wget"


class TestFormula:
    def test_empty_name_or_version_is_rejected(self):
        with pytest.raises(ValueError):
            Formula(name="", version="1.0")
        with pytest.raises(ValueError):
            Formula(name="wget", version=" ")

    @pytest.mark.parametrize(
        "name, version", [("..", "1.0"), (".", "1.0"), ("a/b", "1.0"), ("wget", ".."), ("wget", "1/2")]
    )
    def test_names_and_versions_must_be_single_directory_names(self, name, version):
        with pytest.raises(ValueError, match="directory name|unusable version"):
            Formula(name=name, version=version)

    def test_lists_become_tuples(self):
        formula = Formula(
            name="wget",
            version="1.25.0",
            dependencies=[Dependency("openssl@3")],
            bottles=[Bottle("a" * 64, "arm64_sequoia")],
        )

        assert isinstance(formula.dependencies, tuple)
        assert isinstance(formula.bottles, tuple)
        hash(formula)

    def test_bottle_url_maps_versioned_names_to_nested_paths(self):
        bottle = Bottle("abc123", "arm64_sequoia")
        domain = "https://ghcr.io/v2/homebrew/core/"

        assert (
            Formula(name="openssl@3", version="3.4.0").bottle_url(bottle, domain)
            == "https://ghcr.io/v2/homebrew/core/openssl/3/blobs/sha256:abc123"
        )
        assert (
            Formula(name="tree", version="2.2.1").bottle_url(bottle, domain)
            == "https://ghcr.io/v2/homebrew/core/tree/blobs/sha256:abc123"
        )

    def test_explicit_bottle_url_wins(self):
        bottle = Bottle("abc123", "arm64_sequoia", url="https://mirror.example.com/tree.tar.gz")

        assert Formula(name="tree", version="2.2.1").bottle_url(bottle, "https://ghcr.io") == (
            "https://mirror.example.com/tree.tar.gz"
        )

    def test_preferred_bottle_picks_newest_compatible(self):
        formula = Formula(
            name="wget",
            version="1.25.0",
            bottles=[
                Bottle("1" * 64, "arm64_sonoma"),
                Bottle("2" * 64, "arm64_sequoia"),
                Bottle("3" * 64, "arm64_tahoe"),
                Bottle("4" * 64, "sequoia"),
            ],
        )

        assert formula.preferred_bottle(SEQUOIA_ARM).platform == "arm64_sequoia"

    def test_required_dependencies_skip_build_and_optional(self):
        formula = Formula(
            name="wget",
            version="1.25.0",
            dependencies=[
                Dependency("openssl@3"),
                Dependency("pkgconf", DependencyKind.BUILD),
                Dependency("libidn2", DependencyKind.RECOMMENDED),
                Dependency("gpgme", DependencyKind.OPTIONAL),
            ],
        )

        assert [d.name for d in formula.required_dependencies()] == ["openssl@3", "libidn2"]

    def test_from_dict_accepts_bare_dependency_names_and_desc(self):
        formula = Formula.from_dict(
            {
                "name": "wget",
                "version": 1.25,
                "desc": "Internet file retriever",
                "dependencies": ["openssl@3", {"name": "pkgconf", "kind": "build"}],
                "bottles": [{"sha256": "f" * 64, "platform": "arm64_sequoia"}],
            }
        )

        assert formula.version == "1.25"
        assert formula.description == "Internet file retriever"
        assert formula.dependencies[1].kind is DependencyKind.BUILD
        assert Formula.from_dict(formula.to_dict()) == formula


class TestInstallRecords:
    def test_receipt_dict_round_trip(self):
        receipt = InstallReceipt(
            name="wget",
            version="1.25.0",
            installed_at=datetime(2026, 1, 2, 3, 4, 5),
            binaries=["wget"],
            bottle_sha256="e" * 64,
            repair_summary="1 of 1 files repaired",
        )

        assert InstallReceipt.from_dict(receipt.to_dict()) == receipt

    def test_status_kinds(self):
        corrupted = InstallationStatus.corrupted("missing binary wget")

        assert corrupted.is_corrupted
        assert not corrupted.is_installed
        assert corrupted.kind is StatusKind.CORRUPTED
        assert str(corrupted) == "corrupted (missing binary wget)"
        assert InstallationStatus.INSTALLED.is_installed
        assert str(InstallationStatus.NOT_INSTALLED) == "not_installed"
