"""YAML configuration loader with environment overrides.

Layers, later wins:

    1. config/config.yaml -- quota ceilings, provider weights, extractor rules
    2. .env file
    3. environment variables

``load_config`` reads the YAML file and deep-merges the Settings-derived
values on top.
"""

from pathlib import Path

import yaml

from artistgraph.config.settings import Settings
from artistgraph.utils.errors import ConfigurationError


def load_config(path: str | None = None, settings: Settings | None = None) -> dict:
    """Load YAML config and merge with environment-based Settings.

    Args:
        path: YAML file to read; defaults to ``settings.config_path``.
        settings: Pre-built settings; a fresh ``Settings()`` when omitted.

    Returns:
        Fully resolved configuration dictionary.

    Raises:
        ConfigurationError: If the YAML file exists but cannot be parsed.
    """
    settings = settings or Settings()
    config_path = Path(path or settings.config_path)
    if config_path.exists():
        try:
            with open(config_path) as f:
                yaml_config = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ConfigurationError(message=f"Cannot parse {config_path}: {exc}") from exc
    else:
        yaml_config = {}

    env_overrides = {
        "app": {
            "host": settings.app_host,
            "port": settings.app_port,
            "env": settings.app_env,
        },
        "storage": {
            "database_path": settings.database_path,
        },
        "enrichment": {
            "workers": settings.enrichment_workers,
            "max_attempts": settings.provider_max_attempts,
            "backoff_seconds": settings.provider_backoff_seconds,
            "timeout_seconds": settings.provider_timeout_seconds,
            "configured_providers": settings.get_configured_providers(),
        },
        "quota": {
            "non_blocking": settings.quota_non_blocking,
            "day_reset_hour_utc": settings.quota_day_reset_hour_utc,
        },
        "logging": {
            "level": settings.log_level,
        },
    }

    _deep_merge(yaml_config, env_overrides)
    return yaml_config


def _deep_merge(base: dict, overrides: dict) -> None:
    """Recursively merge *overrides* into *base*, mutating *base*."""
    for key, value in overrides.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
