"""Tests for engine configuration loading."""

import pytest

from marlowe.config import (
    DEFAULT_CONFIG, DEFAULT_WINDOW_MS, EngineConfig, config_from_dict, load_config,
)
from marlowe.core.errors import ConfigError


class TestDefaults:

    def test_values(self):
        assert DEFAULT_CONFIG.default_window_ms == DEFAULT_WINDOW_MS == 86_400_000
        assert DEFAULT_CONFIG.allow_let_assert is False
        assert DEFAULT_CONFIG.deposit_collisions == "keep-first"
        assert DEFAULT_CONFIG.cache_continuations is True

    def test_none_gives_defaults(self):
        assert config_from_dict(None) is DEFAULT_CONFIG


class TestLoadConfig:

    def test_load_yaml(self, tmp_path):
        path = tmp_path / "engine.yaml"
        path.write_text("default_window_ms: 60000\nallow_let_assert: true\n")
        config = load_config(path)
        assert config == EngineConfig(default_window_ms=60_000, allow_let_assert=True)

    def test_empty_file(self, tmp_path):
        path = tmp_path / "engine.yaml"
        path.write_text("")
        assert load_config(path) == DEFAULT_CONFIG

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            load_config(tmp_path / "nope.yaml")

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "engine.yaml"
        path.write_text("default_window_ms: [1, 2\n")
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_config(path)


class TestRejects:

    @pytest.mark.parametrize("data", [
        {"window": 5},
        {"default_window_ms": 0},
        {"default_window_ms": "1h"},
        {"default_window_ms": True},
        {"allow_let_assert": "yes"},
        {"deposit_collisions": "merge"},
        [1, 2],
    ])
    def test_bad_configuration(self, data):
        with pytest.raises(ConfigError):
            config_from_dict(data)
