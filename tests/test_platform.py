"""Tests for bottle tag parsing and ranking."""

import pytest

from conftest import SEQUOIA_ARM
from pour.core.platform import PlatformInfo, find_best_bottle, parse_tag, score_bottle
from pour.models.formula import Bottle


class TestParseTag:
    @pytest.mark.parametrize(
        "tag, expected",
        [
            ("arm64_sequoia", PlatformInfo("darwin", "arm64", 15.0)),
            ("sonoma", PlatformInfo("darwin", "x86_64", 14.0)),
            ("x86_64_linux", PlatformInfo("linux", "x86_64")),
            ("arm64_linux", PlatformInfo("linux", "arm64")),
            ("all", PlatformInfo("any", "any")),
        ],
    )
    def test_known_tags(self, tag, expected):
        assert parse_tag(tag) == expected

    def test_unknown_tag(self):
        assert parse_tag("arm64_leopard") is None

    def test_tag_round_trip(self):
        assert PlatformInfo.from_tag("arm64_sequoia").tag == "arm64_sequoia"
        assert PlatformInfo.from_tag("ventura").tag == "ventura"
        assert PlatformInfo("linux", "x86_64").tag == "x86_64_linux"

    def test_from_tag_rejects_platform_independent_tags(self):
        with pytest.raises(ValueError):
            PlatformInfo.from_tag("all")


class TestRanking:
    def test_newer_macos_bottles_are_incompatible(self):
        assert score_bottle(Bottle("x", "arm64_tahoe"), SEQUOIA_ARM) == -1

    def test_other_arch_is_incompatible(self):
        assert score_bottle(Bottle("x", "sequoia"), SEQUOIA_ARM) == -1

    def test_specific_beats_all(self):
        bottles = [Bottle("a", "all"), Bottle("b", "arm64_ventura")]

        assert find_best_bottle(bottles, SEQUOIA_ARM).platform == "arm64_ventura"

    def test_all_is_used_as_fallback(self):
        bottles = [Bottle("a", "all"), Bottle("b", "x86_64_linux")]

        assert find_best_bottle(bottles, SEQUOIA_ARM).platform == "all"

    def test_nothing_compatible(self):
        assert find_best_bottle([Bottle("b", "x86_64_linux")], SEQUOIA_ARM) is None
