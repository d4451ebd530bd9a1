"""Tests for the formula metadata cache."""

import json

import pytest

from pour.core.cache import MetadataCache
from pour.models.formula import Bottle, Formula


@pytest.fixture
def cache(config):
    return MetadataCache(config)


@pytest.fixture
def wget():
    return Formula(
        name="wget",
        version="1.25.0",
        description="Internet file retriever",
        bottles=[Bottle("a" * 64, "arm64_sequoia")],
    )


class TestGetSet:
    def test_entries_survive_a_new_instance(self, config, cache, wget):
        cache.set(wget)

        fresh = MetadataCache(config)

        assert fresh.get("wget") == wget
        assert fresh.contains("wget")
        assert fresh.get("curl") is None

    def test_entry_file_layout(self, cache, wget):
        cache.set(wget)

        data = json.loads((cache.cache_path / "wget.json").read_text())

        assert data["key"] == "wget"
        assert data["value"]["version"] == "1.25.0"
        assert isinstance(data["_ts"], int)

    def test_versioned_names_get_safe_file_names(self, cache):
        cache.set(Formula(name="openssl@3", version="3.4.0"))

        assert (cache.cache_path / "openssl@3.json").is_file()
        assert cache.get("openssl@3").version == "3.4.0"

    def test_similar_keys_do_not_share_a_file(self, config, cache):
        cache.set(Formula(name="a_b", version="1.0"))
        cache.set(Formula(name="a:b", version="2.0"))

        fresh = MetadataCache(config)

        assert fresh.get("a_b").version == "1.0"
        assert fresh.get("a:b").version == "2.0"
        assert fresh.get("a/b") is None
        assert fresh.stats()["disk_entries"] == 2

    def test_corrupt_entries_are_dropped(self, config, cache, wget):
        cache.set(wget)
        (cache.cache_path / "wget.json").write_text("{not json")

        fresh = MetadataCache(config)

        assert fresh.get("wget") is None
        assert not (cache.cache_path / "wget.json").exists()

    def test_remove(self, cache, wget):
        cache.set(wget)

        assert cache.remove("wget") is True
        assert cache.remove("wget") is False
        assert cache.get("wget") is None


class TestRevision:
    def test_revision_change_clears_entries(self, cache, wget):
        assert cache.sync_revision("abc123") is True
        cache.set(wget)

        assert cache.sync_revision("abc123") is False
        assert cache.get("wget") == wget

        assert cache.sync_revision("def456") is True
        assert cache.revision == "def456"
        assert cache.get("wget") is None

    def test_stats(self, cache, wget):
        cache.set(wget)

        stats = cache.stats()

        assert stats["memory_entries"] == 1
        assert stats["disk_entries"] == 1
        assert stats["disk_bytes"] > 0
        assert stats["revision"] is None

    def test_clear_counts_disk_entries(self, cache, wget):
        cache.set(wget)
        cache.set(Formula(name="curl", version="8.11.0"))

        assert cache.clear() == 2
        assert cache.stats()["disk_entries"] == 0
