"""Configuration management for Solar Miner."""

from solar_miner.config.schema import AppConfig
from solar_miner.config.manager import ConfigError, ConfigManager

__all__ = ["AppConfig", "ConfigError", "ConfigManager"]
