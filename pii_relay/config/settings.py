"""
Configuration loader — YAML file + environment variable overrides.
"""

from __future__ import annotations
import os
import yaml
from pathlib import Path
from typing import Any, Callable, Optional

from ..core.errors import ConfigError


class Config:
    """Configuration container with dot-access and env var support."""

    def __init__(self, data: dict):
        self._data = data

    def get(self, key: str, default: Any = None) -> Any:
        """Get a config value by dot-separated key path."""
        keys = key.split(".")
        value = self._data
        for k in keys:
            if isinstance(value, dict):
                value = value.get(k)
            else:
                return default
            if value is None:
                return default
        return value

    def set(self, key: str, value: Any) -> None:
        """Set a config value by dot-separated key path."""
        keys = key.split(".")
        d = self._data
        for k in keys[:-1]:
            d = d.setdefault(k, {})
        d[keys[-1]] = value

    @property
    def raw(self) -> dict:
        return self._data

    def __repr__(self) -> str:
        # Keys only: values may hold credentials
        return f"Config(sections={list(self._data.keys())})"


# env var → (config key, converter)
ENV_MAPPINGS: dict[str, tuple[str, Callable[[str], Any]]] = {
    "AZURE_OPENAI_ENDPOINT": ("providers.azure.endpoint", str),
    "AZURE_OPENAI_API_KEY": ("providers.azure.api_key", str),
    "OPENAI_API_KEY": ("providers.openai.api_key", str),
    "PII_RELAY_LLM_PROVIDER": ("llm.provider", str),
    "PII_RELAY_MODEL": ("llm.model", str),
    "PII_ANALYZER_URL": ("detection.base_url", str),
    "PII_RELAY_MAX_ITERATIONS": ("agent.max_iterations", int),
}


def load_config(config_path: Optional[str] = None) -> Config:
    """
    Load configuration from YAML file with env var overrides.

    Priority (highest to lowest):
    1. Environment variables (see ENV_MAPPINGS)
    2. User config file (if provided)
    3. Default config
    """
    default_path = Path(__file__).parent / "default_config.yaml"
    with open(default_path) as f:
        data = yaml.safe_load(f)

    if config_path:
        if not Path(config_path).exists():
            raise ConfigError(f"Config file not found: {config_path}")
        with open(config_path) as f:
            user_data = yaml.safe_load(f) or {}
        data = _deep_merge(data, user_data)

    config = Config(data)
    for env_key, (config_key, convert) in ENV_MAPPINGS.items():
        env_val = os.getenv(env_key)
        if env_val is None or env_val == "":
            continue
        try:
            config.set(config_key, convert(env_val))
        except ValueError as e:
            raise ConfigError(f"Invalid value for {env_key}: {env_val!r}") from e

    return config


def _deep_merge(base: dict, overlay: dict) -> dict:
    """Recursively merge overlay dict into base dict."""
    result = base.copy()
    for key, value in overlay.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result
