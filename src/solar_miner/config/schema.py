"""Pydantic configuration models for all system settings."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class TelemetryConfig(BaseModel):
    battery_json: str = "/tmp/battery_data.json"  # Written by the Modbus sniffer daemon
    stale_after_seconds: float = Field(60.0, gt=0)


class MinersConfig(BaseModel):
    hosts: list[str] = Field(default_factory=lambda: ["miner1"])
    username: str = "root"
    password: str = ""
    power_target_w: int = Field(700, gt=0)
    max_power_target_w: int = Field(1200, gt=0)  # Hard cap applied to power_target_w
    request_timeout_seconds: float = Field(10.0, gt=0)
    session_ttl_seconds: int = Field(3000, gt=0)  # Braiins sessions last 1h; refresh after 50 min

    @field_validator("hosts", mode="before")
    @classmethod
    def _split_hosts(cls, value: object) -> object:
        if isinstance(value, str):
            return [h.strip() for h in value.split(",") if h.strip()]
        return value


class ThresholdsConfig(BaseModel):
    start_soc: float = Field(95.0, ge=0.0, le=100.0)
    stop_soc: float = Field(92.0, ge=0.0, le=100.0)
    min_charge_current_a: float = 2.0
    window_size: int = Field(6, ge=1)
    batteries_full_soc: float = Field(100.0, ge=0.0, le=100.0)  # Sustain check bypassed at/above this
    active_power_threshold_w: float = Field(50.0, ge=0.0)  # Fleet draw above this = miners running

    @model_validator(mode="after")
    def _check_hysteresis(self) -> ThresholdsConfig:
        if self.stop_soc >= self.start_soc:
            raise ValueError(
                f"stop_soc ({self.stop_soc}) must be below start_soc ({self.start_soc})"
            )
        return self


class ControlConfig(BaseModel):
    poll_interval_ms: int = Field(30000, gt=0)
    max_consecutive_errors: int = Field(3, ge=1)
    stop_attempts: int = Field(3, ge=1)
    stop_retry_backoff_ms: int = Field(5000, ge=0)

    @property
    def poll_interval_seconds(self) -> float:
        return self.poll_interval_ms / 1000

    @property
    def stop_retry_backoff_seconds(self) -> float:
        return self.stop_retry_backoff_ms / 1000


class LoggingConfig(BaseModel):
    level: str = "INFO"
    format: Literal["console", "json"] = "console"
    file: str = ""  # Empty = stdout only

    @field_validator("level", mode="before")
    @classmethod
    def _normalise_level(cls, value: object) -> object:
        if isinstance(value, str):
            value = value.strip().upper()
            if value not in LOG_LEVELS:
                raise ValueError(f"log level must be one of {', '.join(LOG_LEVELS)}")
        return value


class AppConfig(BaseModel):
    """Root configuration model containing all system settings."""

    telemetry: TelemetryConfig = TelemetryConfig()
    miners: MinersConfig = MinersConfig()
    thresholds: ThresholdsConfig = ThresholdsConfig()
    control: ControlConfig = ControlConfig()
    logging: LoggingConfig = LoggingConfig()
