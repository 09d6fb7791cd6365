"""
Unit tests for configuration loading and validation.

Tests strict validation and error handling for the YAML settings file.
"""

from datetime import timedelta
from decimal import Decimal

import pytest
import yaml

from ai_usage_blocks.config.loader import (
    CONFIG_ENV_VAR,
    AppConfig,
    BlocksConfig,
    load_config,
)


def _write_config(tmp_path, config_data, filename: str = "config.yaml") -> str:
    """Write configuration data to a temporary file."""
    config_path = tmp_path / filename
    with open(config_path, 'w', encoding='utf-8') as f:
        yaml.dump(config_data, f)
    return str(config_path)


class TestConfigLoading:
    """Test configuration loading and validation."""

    def test_valid_config_loads_correctly(self, tmp_path):
        """Test that a valid configuration loads correctly."""
        path = _write_config(tmp_path, {
            "blocks": {
                "session_length_hours": 4,
                "token_limit": "max",
                "recent_days": 7,
                "refresh_interval_seconds": 10,
            },
            "pricing": {
                "my-model": {"input": 2.0, "output": 8.0, "cached_input": 0.5},
            },
            "sources": {"codex": ["~/work/codex"]},
        })
        config = load_config(path)

        assert config.blocks.session_length_hours == 4.0
        assert config.blocks.session_duration == timedelta(hours=4)
        assert config.blocks.token_limit == "max"
        assert config.blocks.recent_days == 7
        assert config.blocks.refresh_interval_seconds == 10.0
        assert config.pricing_overrides["my-model"].cached_input_per_million == Decimal("0.5")
        assert config.get_source_directories("codex") == ["~/work/codex"]
        assert config.get_source_directories("claude") == []

    def test_pricing_overrides_merge_with_defaults(self, tmp_path):
        """Configured models sit next to the built-in table."""
        path = _write_config(tmp_path, {"pricing": {"my-model": {"input": 1, "output": 2}}})
        table = load_config(path).pricing_table

        assert table.get_pricing("my-model").output_per_million == Decimal("2")
        assert table.get_pricing("my-model").cached_input_per_million == Decimal("1")
        assert table.supports("gpt-5")

    def test_integer_token_limit(self, tmp_path):
        """Numeric limits are kept as strings for later parsing."""
        path = _write_config(tmp_path, {"blocks": {"token_limit": 500000}})
        assert load_config(path).blocks.token_limit == "500000"

    def test_no_path_returns_defaults(self, monkeypatch):
        """Without a file the defaults apply."""
        monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
        assert load_config(None) == AppConfig()

    def test_env_var_path(self, tmp_path, monkeypatch):
        """The environment variable names the file when no path is given."""
        path = _write_config(tmp_path, {"blocks": {"recent_days": 2}})
        monkeypatch.setenv(CONFIG_ENV_VAR, path)
        assert load_config().blocks.recent_days == 2

    def test_empty_file_returns_defaults(self, tmp_path):
        """An empty document is the same as no settings."""
        path = tmp_path / "empty.yaml"
        path.write_text("", encoding="utf-8")
        assert load_config(str(path)) == AppConfig()

    def test_missing_file_raises_error(self, tmp_path):
        """Test that missing config file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError, match="Config file not found"):
            load_config(str(tmp_path / "nope.yaml"))

    def test_invalid_yaml_raises_error(self, tmp_path):
        """Test that invalid YAML raises YAMLError."""
        path = tmp_path / "bad.yaml"
        path.write_text("blocks: [unclosed", encoding="utf-8")
        with pytest.raises(yaml.YAMLError, match="Invalid YAML"):
            load_config(str(path))

    def test_unknown_top_level_keys_rejected(self, tmp_path):
        """Test that unknown top-level keys are rejected."""
        path = _write_config(tmp_path, {"blocks": {}, "budget": {}})
        with pytest.raises(ValueError, match="Unknown configuration keys"):
            load_config(path)

    def test_unknown_blocks_keys_rejected(self, tmp_path):
        """Test that unknown keys inside blocks are rejected."""
        path = _write_config(tmp_path, {"blocks": {"window": 5}})
        with pytest.raises(ValueError, match="Unknown keys in blocks"):
            load_config(path)

    @pytest.mark.parametrize("blocks,message", [
        ({"session_length_hours": 0}, "blocks.session_length_hours"),
        ({"session_length_hours": "five"}, "blocks.session_length_hours"),
        ({"recent_days": 1.5}, "blocks.recent_days"),
        ({"refresh_interval_seconds": 0.5}, "blocks.refresh_interval_seconds"),
        ({"refresh_interval_seconds": 61}, "blocks.refresh_interval_seconds"),
        ({"token_limit": -1}, "blocks.token_limit"),
        ({"token_limit": "lots"}, "blocks.token_limit"),
    ])
    def test_invalid_blocks_values(self, tmp_path, blocks, message):
        """Out-of-range and mistyped values name the offending key."""
        path = _write_config(tmp_path, {"blocks": blocks})
        with pytest.raises(ValueError, match=message):
            load_config(path)

    def test_pricing_requires_input_and_output(self, tmp_path):
        """Model rates need both input and output."""
        path = _write_config(tmp_path, {"pricing": {"m": {"input": 1}}})
        with pytest.raises(ValueError, match="Missing required 'output' in pricing.m"):
            load_config(path)

    def test_pricing_negative_rate_rejected(self, tmp_path):
        """Rates cannot be negative."""
        path = _write_config(tmp_path, {"pricing": {"m": {"input": 1, "output": -2}}})
        with pytest.raises(ValueError, match="pricing.m.output"):
            load_config(path)

    def test_unknown_source_rejected(self, tmp_path):
        """Only known sources can be configured."""
        path = _write_config(tmp_path, {"sources": {"gemini": ["/tmp"]}})
        with pytest.raises(ValueError, match="Unknown keys in sources"):
            load_config(path)


class TestBlocksConfig:
    """Test BlocksConfig validation."""

    def test_defaults(self):
        """Defaults match the documented behavior."""
        config = BlocksConfig()
        assert config.session_duration == timedelta(hours=5)
        assert config.token_limit is None
        assert config.recent_days == 3

    def test_non_positive_session_length(self):
        """Session length must be positive."""
        with pytest.raises(ValueError, match="session_length_hours must be > 0"):
            BlocksConfig(session_length_hours=0)
