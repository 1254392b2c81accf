"""Tests for configuration management."""

from __future__ import annotations

from pathlib import Path

import pytest

from backlogctx.config import (
    ProjectConfig,
    find_project_root,
    get_index_path,
    load_config,
    save_config,
    set_config_value,
)
from backlogctx.exceptions import ConfigError


class TestConfig:
    def test_default_config(self):
        config = ProjectConfig()
        assert config.backlog_dir == ".backlog"
        assert config.search.hybrid is True
        assert config.search.text_weight == 0.7
        assert config.search.vector_weight == 0.3
        assert config.hydration.default_depth == 1
        assert config.hydration.default_max_tokens == 4000
        assert config.hydration.session_gap_minutes == 30

    def test_save_and_load(self, tmp_path: Path):
        config = ProjectConfig(name="test-project")
        config.search.hybrid = False
        config.hydration.default_depth = 2

        save_config(tmp_path, config)
        loaded = load_config(tmp_path)

        assert loaded.name == "test-project"
        assert loaded.search.hybrid is False
        assert loaded.hydration.default_depth == 2

    def test_load_missing_uses_defaults(self, tmp_path: Path):
        config = load_config(tmp_path)
        assert config.name == tmp_path.name
        assert config.search.embedding_dim == 256

    def test_load_corrupt_config(self, tmp_path: Path):
        (tmp_path / ".backlogctx").mkdir()
        (tmp_path / ".backlogctx" / "config.json").write_text("{not json")
        with pytest.raises(ConfigError):
            load_config(tmp_path)

    def test_find_project_root(self, tmp_path: Path):
        assert find_project_root(tmp_path) is None

        (tmp_path / ".backlogctx").mkdir()
        assert find_project_root(tmp_path) == tmp_path

        sub = tmp_path / "src" / "module"
        sub.mkdir(parents=True)
        assert find_project_root(sub) == tmp_path

    def test_index_path(self, tmp_path: Path):
        config = ProjectConfig()
        assert get_index_path(tmp_path, config) == tmp_path / ".backlogctx" / "index.json"

        config.search.snapshot_path = str(tmp_path / "elsewhere.json")
        assert get_index_path(tmp_path, config) == tmp_path / "elsewhere.json"

    def test_set_config_value(self):
        config = ProjectConfig()
        updated = set_config_value(config, "search.hybrid", False)
        assert updated.search.hybrid is False

    def test_set_config_nested(self):
        config = ProjectConfig()
        updated = set_config_value(config, "hydration.activity_limit", 5)
        assert updated.hydration.activity_limit == 5

    def test_set_config_invalid_key(self):
        config = ProjectConfig()
        with pytest.raises(KeyError):
            set_config_value(config, "nonexistent.key", "value")

    def test_set_config_invalid_value(self):
        config = ProjectConfig()
        with pytest.raises(ConfigError):
            set_config_value(config, "hydration.default_depth", 7)
