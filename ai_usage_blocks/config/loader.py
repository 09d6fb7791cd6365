"""
Configuration management and loading.

Handles the optional YAML settings file and its environment variable.
"""

import os
from dataclasses import dataclass, field
from datetime import timedelta
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from ai_usage_blocks.core.blocks import DEFAULT_RECENT_DAYS
from ai_usage_blocks.core.budget import MAX_LIMIT_SENTINEL
from ai_usage_blocks.core.live import MAX_REFRESH_SECONDS, MIN_REFRESH_SECONDS
from ai_usage_blocks.core.pricing import DEFAULT_PRICING_TABLE, ModelPricing, PricingTable

CONFIG_ENV_VAR = "AI_USAGE_BLOCKS_CONFIG"


@dataclass(frozen=True)
class BlocksConfig:
    """Settings for block segmentation and budget classification."""
    session_length_hours: float = 5.0
    token_limit: Optional[str] = None  # integer string or "max"
    recent_days: int = DEFAULT_RECENT_DAYS
    refresh_interval_seconds: float = 5.0

    def __post_init__(self):
        """Validate ranges."""
        if self.session_length_hours <= 0:
            raise ValueError("session_length_hours must be > 0")
        if self.recent_days <= 0:
            raise ValueError("recent_days must be > 0")
        if not MIN_REFRESH_SECONDS <= self.refresh_interval_seconds <= MAX_REFRESH_SECONDS:
            raise ValueError(
                f"refresh_interval_seconds must be between "
                f"{MIN_REFRESH_SECONDS:g} and {MAX_REFRESH_SECONDS:g}"
            )

    @property
    def session_duration(self) -> timedelta:
        return timedelta(hours=self.session_length_hours)


@dataclass(frozen=True)
class AppConfig:
    """Complete application configuration."""
    blocks: BlocksConfig = field(default_factory=BlocksConfig)
    pricing_overrides: Dict[str, ModelPricing] = field(default_factory=dict)
    source_directories: Dict[str, List[str]] = field(default_factory=dict)

    @property
    def pricing_table(self) -> PricingTable:
        """Built-in pricing with configured overrides applied."""
        return DEFAULT_PRICING_TABLE.with_overrides(self.pricing_overrides)

    def get_source_directories(self, source: str) -> List[str]:
        """Configured directories for a source, empty when not set."""
        return list(self.source_directories.get(source, []))


def resolve_config_path(path: Optional[str] = None) -> Optional[str]:
    """Explicit path first, then the ``AI_USAGE_BLOCKS_CONFIG`` variable."""
    if path:
        return path
    env_path = os.environ.get(CONFIG_ENV_VAR, "").strip()
    return env_path or None


def load_config(path: Optional[str] = None) -> AppConfig:
    """Load and validate configuration from a YAML file.

    With no path and no environment variable the defaults are returned.
    Validation is strict: unknown keys and wrong types are errors.

    Args:
        path: Path to YAML configuration file

    Returns:
        Validated AppConfig object

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    resolved = resolve_config_path(path)
    if resolved is None:
        return AppConfig()

    config_path = Path(resolved).expanduser()
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {resolved}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {resolved}: {e}")

    if raw_config is None:
        return AppConfig()
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration root must be a dictionary")

    allowed_top_keys = {'blocks', 'pricing', 'sources'}
    unknown_keys = set(raw_config.keys()) - allowed_top_keys
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {sorted(unknown_keys)}")

    return AppConfig(
        blocks=_parse_blocks(raw_config.get('blocks') or {}),
        pricing_overrides=_parse_pricing(raw_config.get('pricing') or {}),
        source_directories=_parse_sources(raw_config.get('sources') or {}),
    )


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _parse_blocks(data: Any) -> BlocksConfig:
    if not isinstance(data, dict):
        raise ValueError("'blocks' must be a dictionary")

    allowed_keys = {'session_length_hours', 'token_limit', 'recent_days', 'refresh_interval_seconds'}
    unknown_keys = set(data.keys()) - allowed_keys
    if unknown_keys:
        raise ValueError(f"Unknown keys in blocks: {sorted(unknown_keys)}")

    kwargs: Dict[str, Any] = {}

    if 'session_length_hours' in data:
        value = data['session_length_hours']
        if not _is_number(value) or value <= 0:
            raise ValueError("'blocks.session_length_hours' must be a number > 0")
        kwargs['session_length_hours'] = float(value)

    if 'token_limit' in data:
        kwargs['token_limit'] = _parse_token_limit_setting(data['token_limit'])

    if 'recent_days' in data:
        value = data['recent_days']
        if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
            raise ValueError("'blocks.recent_days' must be an integer > 0")
        kwargs['recent_days'] = value

    if 'refresh_interval_seconds' in data:
        value = data['refresh_interval_seconds']
        if not _is_number(value) or not MIN_REFRESH_SECONDS <= value <= MAX_REFRESH_SECONDS:
            raise ValueError(
                f"'blocks.refresh_interval_seconds' must be between "
                f"{MIN_REFRESH_SECONDS:g} and {MAX_REFRESH_SECONDS:g}"
            )
        kwargs['refresh_interval_seconds'] = float(value)

    return BlocksConfig(**kwargs)


def _parse_token_limit_setting(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, str) and value.strip().lower() == MAX_LIMIT_SENTINEL:
        return MAX_LIMIT_SENTINEL
    if isinstance(value, int) and not isinstance(value, bool) and value > 0:
        return str(value)
    raise ValueError("'blocks.token_limit' must be an integer > 0 or 'max'")


def _parse_rate(value: Any, path: str) -> Decimal:
    if not _is_number(value):
        raise ValueError(f"'{path}' must be a number")
    try:
        rate = Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"'{path}' must be a number")
    if not rate.is_finite() or rate < 0:
        raise ValueError(f"'{path}' must be >= 0")
    return rate


def _parse_pricing(data: Any) -> Dict[str, ModelPricing]:
    """Parse per-model rates (USD per million tokens).

    ``cached_input`` defaults to the input rate and ``cache_creation`` to 0.
    """
    if not isinstance(data, dict):
        raise ValueError("'pricing' must be a dictionary")

    allowed_keys = {'input', 'output', 'cached_input', 'cache_creation'}
    overrides: Dict[str, ModelPricing] = {}

    for model, rates in data.items():
        path = f"pricing.{model}"
        if not isinstance(rates, dict):
            raise ValueError(f"'{path}' must be a dictionary")

        unknown_keys = set(rates.keys()) - allowed_keys
        if unknown_keys:
            raise ValueError(f"Unknown keys in {path}: {sorted(unknown_keys)}")

        for required in ('input', 'output'):
            if required not in rates:
                raise ValueError(f"Missing required '{required}' in {path}")

        input_rate = _parse_rate(rates['input'], f"{path}.input")
        overrides[str(model)] = ModelPricing(
            input_per_million=input_rate,
            output_per_million=_parse_rate(rates['output'], f"{path}.output"),
            cached_input_per_million=(
                _parse_rate(rates['cached_input'], f"{path}.cached_input")
                if 'cached_input' in rates else input_rate
            ),
            cache_creation_per_million=(
                _parse_rate(rates['cache_creation'], f"{path}.cache_creation")
                if 'cache_creation' in rates else Decimal("0")
            ),
        )

    return overrides


def _parse_sources(data: Any) -> Dict[str, List[str]]:
    if not isinstance(data, dict):
        raise ValueError("'sources' must be a dictionary")

    allowed_keys = {'codex', 'claude'}
    unknown_keys = set(data.keys()) - allowed_keys
    if unknown_keys:
        raise ValueError(f"Unknown keys in sources: {sorted(unknown_keys)}")

    directories: Dict[str, List[str]] = {}
    for source, paths in data.items():
        if isinstance(paths, str):
            paths = [paths]
        if not isinstance(paths, list) or not all(isinstance(p, str) and p for p in paths):
            raise ValueError(f"'sources.{source}' must be a list of paths")
        directories[source] = list(paths)
    return directories
