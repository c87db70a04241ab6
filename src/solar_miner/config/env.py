"""Environment-variable configuration surface.

Every field is optional: only variables that are actually set override the
YAML/default configuration. Variable names are the field names upper-cased,
e.g. ``MINER_HOSTS=10.0.0.21,10.0.0.22``.
"""

from __future__ import annotations

from typing import Any

from pydantic_settings import BaseSettings, SettingsConfigDict

# env field -> (section, key) in AppConfig
_FIELD_MAP: dict[str, tuple[str, str]] = {
    "battery_json": ("telemetry", "battery_json"),
    "telemetry_stale_seconds": ("telemetry", "stale_after_seconds"),
    "miner_hosts": ("miners", "hosts"),
    "miner_username": ("miners", "username"),
    "miner_password": ("miners", "password"),
    "miner_power_target_w": ("miners", "power_target_w"),
    "miner_max_power_target_w": ("miners", "max_power_target_w"),
    "start_mining_soc": ("thresholds", "start_soc"),
    "stop_mining_soc": ("thresholds", "stop_soc"),
    "min_charge_current_a": ("thresholds", "min_charge_current_a"),
    "current_window_size": ("thresholds", "window_size"),
    "batteries_full_soc": ("thresholds", "batteries_full_soc"),
    "active_power_threshold_w": ("thresholds", "active_power_threshold_w"),
    "poll_interval_ms": ("control", "poll_interval_ms"),
    "max_consecutive_errors": ("control", "max_consecutive_errors"),
    "stop_attempts": ("control", "stop_attempts"),
    "stop_retry_backoff_ms": ("control", "stop_retry_backoff_ms"),
    "log_level": ("logging", "level"),
    "log_format": ("logging", "format"),
    "log_file": ("logging", "file"),
}


class EnvSettings(BaseSettings):
    """Flat view of the supported environment variables."""

    # Set-but-empty variables fall back to the configured default
    model_config = SettingsConfigDict(extra="ignore", env_file_encoding="utf-8", env_ignore_empty=True)

    battery_json: str | None = None
    telemetry_stale_seconds: float | None = None
    miner_hosts: str | None = None  # Comma-separated
    miner_username: str | None = None
    miner_password: str | None = None
    miner_power_target_w: int | None = None
    miner_max_power_target_w: int | None = None
    start_mining_soc: float | None = None
    stop_mining_soc: float | None = None
    min_charge_current_a: float | None = None
    current_window_size: int | None = None
    batteries_full_soc: float | None = None
    active_power_threshold_w: float | None = None
    poll_interval_ms: int | None = None
    max_consecutive_errors: int | None = None
    stop_attempts: int | None = None
    stop_retry_backoff_ms: int | None = None
    log_level: str | None = None
    log_format: str | None = None
    log_file: str | None = None

    def to_overrides(self) -> dict[str, Any]:
        """Return the set variables as a nested AppConfig-shaped dict."""
        overrides: dict[str, dict[str, Any]] = {}
        for name, value in self.model_dump(exclude_none=True).items():
            section, key = _FIELD_MAP[name]
            overrides.setdefault(section, {})[key] = value
        return overrides
