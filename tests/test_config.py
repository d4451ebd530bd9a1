"""Tests for configuration roots and overrides."""

import pytest

from pour.core.config import DEFAULT_BOTTLE_DOMAIN, PourConfig, load_overrides
from pour.core.errors import UserError
from pour.core.platform import PlatformInfo


class TestDefaults:
    def test_pour_home_sets_the_global_root(self, tmp_path, monkeypatch):
        monkeypatch.setenv("POUR_HOME", str(tmp_path / "root"))

        config = PourConfig.default()

        assert config.home == tmp_path / "root"
        assert config.bin_dir == tmp_path / "root" / "bin"
        assert config.cellar_dir == tmp_path / "root" / "Cellar"
        assert config.bottle_domain == DEFAULT_BOTTLE_DOMAIN
        assert not config.is_project

    def test_config_file_overrides_tunables_and_target(self, tmp_path, monkeypatch):
        home = tmp_path / "root"
        home.mkdir()
        (home / "config.yaml").write_text(
            "max_streams: 2\nchunk_size: 4096\ntraverse_parents: false\ntarget: x86_64_linux\n"
        )
        monkeypatch.setenv("POUR_HOME", str(home))

        config = PourConfig.default()

        assert config.max_streams == 2
        assert config.chunk_size == 4096
        assert config.traverse_parents is False
        assert config.target == PlatformInfo("linux", "x86_64")

    def test_missing_file_means_no_overrides(self, tmp_path):
        assert load_overrides(tmp_path / "config.yaml") == {}

    def test_non_mapping_file_is_rejected(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("- just\n- a list\n")

        with pytest.raises(UserError, match="mapping") as exc_info:
            load_overrides(path)
        assert exc_info.value.context["path"] == str(path)

    @pytest.mark.parametrize(
        "text", ["max_streams: [unterminated\n", "target: not_a_platform\n"]
    )
    def test_malformed_file_is_a_user_error(self, tmp_path, text):
        path = tmp_path / "config.yaml"
        path.write_text(text)

        with pytest.raises(UserError, match="Invalid configuration"):
            load_overrides(path)


class TestProjectRoots:
    def test_project_config_keeps_settings_and_remembers_global_home(self, config, tmp_path):
        config.max_streams = 3
        project = tmp_path / "project"

        local = config.for_project(project)

        assert local.home == project / ".pour"
        assert local.bin_dir == project / ".pour" / "bin"
        assert local.max_streams == 3
        assert local.target == config.target
        assert local.global_home == config.home
        assert local.is_project

    def test_ensure_dirs(self, tmp_path):
        config = PourConfig.at(tmp_path / "fresh")

        config.ensure_dirs()

        for path in (config.bin_dir, config.opt_dir, config.cellar_dir, config.tmp_dir):
            assert path.is_dir()
