"""Tests for configuration loading and saving."""

import json
import tempfile
from pathlib import Path

import pytest

from claude_code_scope.config import DEFAULT_CLAUDE_PROJECTS_DIR, Config


@pytest.fixture
def config_path():
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir) / "nested" / "config.json"


class TestConfig:
    def test_defaults_when_missing(self, config_path):
        cfg = Config.load(config_path)
        assert cfg.projects_dir == DEFAULT_CLAUDE_PROJECTS_DIR
        assert cfg.workers == 2
        assert cfg.max_results == 100
        assert cfg.cache_enabled is True
        assert cfg.stream_threshold_bytes == 5 * 1024 * 1024

    def test_round_trip(self, config_path):
        Config(projects_dir=Path("/data/projects"), workers=4, max_results=10).save(config_path)
        cfg = Config.load(config_path)
        assert cfg.projects_dir == Path("/data/projects")
        assert cfg.workers == 4
        assert cfg.max_results == 10

    def test_corrupt_file_uses_defaults(self, config_path):
        config_path.parent.mkdir(parents=True)
        config_path.write_text("{not json", encoding="utf-8")
        assert Config.load(config_path).workers == 2

    def test_bad_values_use_defaults(self, config_path):
        config_path.parent.mkdir(parents=True)
        config_path.write_text(json.dumps({"workers": "many"}), encoding="utf-8")
        assert Config.load(config_path).workers == 2

    def test_partial_file(self, config_path):
        config_path.parent.mkdir(parents=True)
        config_path.write_text(json.dumps({"stream_threshold_mb": 1}), encoding="utf-8")
        cfg = Config.load(config_path)
        assert cfg.stream_threshold_bytes == 1024 * 1024
        assert cfg.projects_dir == DEFAULT_CLAUDE_PROJECTS_DIR
