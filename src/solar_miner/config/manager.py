"""Configuration loading and validation.

Sources, lowest to highest precedence: schema defaults, optional YAML file,
environment variables (optionally read from a ``.env`` file).
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from solar_miner.config.env import EnvSettings
from solar_miner.config.schema import AppConfig

logger = logging.getLogger(__name__)


class ConfigError(Exception):
    """Configuration is invalid or a required value is missing."""


class ConfigManager:
    """Loads config from YAML + environment and validates it."""

    def __init__(
        self,
        config_path: Path | None = None,
        env_file: Path | None = None,
    ) -> None:
        self._config_path = config_path or Path("config.yaml")
        self._env_file = env_file
        self._config: AppConfig | None = None
        self._raw: dict[str, Any] = {}

    @property
    def config(self) -> AppConfig:
        if self._config is None:
            raise RuntimeError("Config not loaded. Call load() first.")
        return self._config

    def load(self, require_credentials: bool = True) -> AppConfig:
        """Load, merge and validate configuration.

        Raises:
            ConfigError: if validation fails, or if ``require_credentials`` is
                set and the miner password or host list is empty.
        """
        file_values = self._load_yaml(self._config_path)
        try:
            env = EnvSettings(_env_file=self._env_file)
        except ValidationError as e:
            raise ConfigError(f"Invalid environment configuration: {e}") from e

        merged = self._deep_merge(file_values, env.to_overrides())
        try:
            config = AppConfig.model_validate(merged)
        except ValidationError as e:
            raise ConfigError(f"Invalid configuration: {e}") from e

        if require_credentials:
            self.check_required(config)

        self._raw = merged
        self._config = config
        logger.info("Configuration loaded successfully")
        return config

    @staticmethod
    def check_required(config: AppConfig) -> None:
        """Fail fast on values the controller cannot run without."""
        if not config.miners.password:
            raise ConfigError("MINER_PASSWORD environment variable is required")
        if not config.miners.hosts:
            raise ConfigError("MINER_HOSTS must list at least one miner")

    def get_raw(self) -> dict[str, Any]:
        return dict(self._raw)

    @staticmethod
    def _load_yaml(path: Path) -> dict[str, Any]:
        if not path.exists():
            return {}
        try:
            with open(path) as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Cannot parse {path}: {e}") from e
        return data if isinstance(data, dict) else {}

    @staticmethod
    def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
        """Recursively merge override into base, returning a new dict."""
        result = dict(base)
        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = ConfigManager._deep_merge(result[key], value)
            else:
                result[key] = value
        return result
