"""Tests for workspace configuration loading and saving."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest
from ruamel.yaml import YAML

from zen_assets.config import (
    AssetConfig,
    TemplateEngineConfig,
    ZenConfig,
    config_path,
    format_duration,
    load_config,
    parse_duration,
    save_config,
)
from zen_assets.errors import ConfigurationError


def _write_config(root: Path, text: str) -> None:
    path = config_path(root)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


class TestDurations:
    """Test duration parsing and formatting."""

    @pytest.mark.parametrize(
        "value,expected",
        [(90, 90.0), ("90", 90.0), ("90s", 90.0), ("30m", 1800.0), ("24h", 86400.0), ("1h30m", 5400.0)],
    )
    def test_parse_duration(self, value, expected):
        """Numbers are seconds; unit suffixes combine."""
        assert parse_duration(value) == expected

    @pytest.mark.parametrize("value", ["", "soon", "10x", "5m garbage", True, None])
    def test_parse_duration_rejects_garbage(self, value):
        """Unparseable durations raise ConfigurationError."""
        with pytest.raises(ConfigurationError):
            parse_duration(value)

    def test_format_duration_prefers_largest_unit(self):
        """Whole hours and minutes render compactly."""
        assert format_duration(86400) == "24h"
        assert format_duration(1800) == "30m"
        assert format_duration(45) == "45s"


class TestAssetConfig:
    """Test AssetConfig defaults, parsing and validation."""

    def test_defaults(self):
        """Defaults match the documented values."""
        config = AssetConfig()
        assert config.repository_url == "https://github.com/daddia/zen-assets.git"
        assert config.branch == "main"
        assert config.cache_size_mb == 100
        assert config.default_ttl == 24 * 3600
        assert config.sync_timeout_seconds == 30
        assert config.integrity_checks_enabled is True

    def test_from_dict_parses_values(self):
        """Strings, ints, durations and booleans are coerced."""
        config = AssetConfig.from_dict(
            {
                "repository_url": " https://gitlab.com/acme/assets ",
                "branch": "develop",
                "cache_size_mb": "50",
                "default_ttl": "12h",
                "integrity_checks_enabled": "no",
            }
        )
        assert config.repository_url == "https://gitlab.com/acme/assets"
        assert config.branch == "develop"
        assert config.cache_size_mb == 50
        assert config.default_ttl == 12 * 3600
        assert config.integrity_checks_enabled is False

    def test_unknown_keys_warn(self, caplog):
        """Unknown keys are ignored with a warning."""
        with caplog.at_level(logging.WARNING, logger="zen_assets.config"):
            AssetConfig.from_dict({"mystery": 1})
        assert "mystery" in caplog.text

    def test_bad_integer_raises(self):
        """Non-numeric sizes are configuration errors."""
        with pytest.raises(ConfigurationError, match="cache_size_mb"):
            AssetConfig.from_dict({"cache_size_mb": "lots"})

    @pytest.mark.parametrize(
        "field,value",
        [
            ("repository_url", ""),
            ("branch", ""),
            ("cache_path", ""),
            ("cache_size_mb", 0),
            ("sync_timeout_seconds", -1),
            ("max_concurrent_ops", 0),
        ],
    )
    def test_validate_rejects(self, field, value):
        """Empty strings and non-positive numbers fail validation."""
        config = AssetConfig()
        setattr(config, field, value)
        with pytest.raises(ConfigurationError):
            config.validate()

    def test_env_overrides(self):
        """Environment variables override file values."""
        config = AssetConfig().apply_env(
            {"ZEN_ASSETS_REPOSITORY_URL": "/srv/assets", "ZEN_ASSETS_BRANCH": "next"}
        )
        assert config.repository_url == "/srv/assets"
        assert config.branch == "next"
        assert config.cache_path == "~/.zen/cache/assets"

    def test_to_dict_round_trips(self):
        """to_dict output parses back to an equal config."""
        config = AssetConfig(branch="dev", default_ttl=1800)
        assert AssetConfig.from_dict(config.to_dict()) == config


class TestTemplateEngineConfig:
    """Test TemplateEngineConfig parsing."""

    def test_delimiters_and_flags(self):
        """Custom delimiters and strict mode are read."""
        config = TemplateEngineConfig.from_dict(
            {"strict_mode": True, "cache_ttl": "10m", "default_delims": {"left": "[[", "right": "]]"}}
        )
        assert config.strict_mode is True
        assert config.cache_ttl == 600
        assert config.default_delims.left == "[["
        assert config.default_delims.right == "]]"

    def test_validate_rejects_zero_cache_size(self):
        """cache_size must be positive."""
        config = TemplateEngineConfig(cache_size=0)
        with pytest.raises(ConfigurationError):
            config.validate()


class TestLoadSave:
    """Test reading and writing .zen/config.yaml."""

    def test_missing_file_gives_defaults(self, tmp_path: Path):
        """No config file means default settings."""
        config = load_config(tmp_path, environ={})
        assert config.assets == AssetConfig()
        assert config.templates.cache_size == 100

    def test_load_reads_both_sections(self, tmp_path: Path):
        """Both sections are parsed from YAML."""
        _write_config(
            tmp_path,
            "assets:\n  branch: release\n  sync_timeout_seconds: 5\ntemplates:\n  strict_mode: true\n",
        )
        config = load_config(tmp_path, environ={})
        assert config.assets.branch == "release"
        assert config.assets.sync_timeout_seconds == 5
        assert config.templates.strict_mode is True

    def test_invalid_yaml_raises(self, tmp_path: Path):
        """Unparseable YAML is a configuration error."""
        _write_config(tmp_path, "assets: [unclosed\n")
        with pytest.raises(ConfigurationError):
            load_config(tmp_path, environ={})

    def test_save_preserves_other_sections(self, tmp_path: Path):
        """Saving keeps unrelated top-level sections."""
        _write_config(tmp_path, "project:\n  name: demo\nassets:\n  branch: old\n")
        config = ZenConfig(assets=AssetConfig(branch="new"))
        save_config(tmp_path, config)

        data = YAML(typ="safe").load(config_path(tmp_path).read_text(encoding="utf-8"))
        assert data["project"] == {"name": "demo"}
        assert data["assets"]["branch"] == "new"
        assert load_config(tmp_path, environ={}).assets.branch == "new"
