"""Shared test fixtures for Solar Miner."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable

import pytest

from solar_miner.config.schema import AppConfig

_ENV_VARS = (
    "BATTERY_JSON", "TELEMETRY_STALE_SECONDS", "MINER_HOSTS", "MINER_USERNAME",
    "MINER_PASSWORD", "MINER_POWER_TARGET_W", "MINER_MAX_POWER_TARGET_W",
    "START_MINING_SOC", "STOP_MINING_SOC", "MIN_CHARGE_CURRENT_A",
    "CURRENT_WINDOW_SIZE", "BATTERIES_FULL_SOC", "ACTIVE_POWER_THRESHOLD_W",
    "POLL_INTERVAL_MS", "MAX_CONSECUTIVE_ERRORS", "STOP_ATTEMPTS",
    "STOP_RETRY_BACKOFF_MS", "LOG_LEVEL", "LOG_FORMAT", "LOG_FILE",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the developer's shell environment out of config tests."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def config() -> AppConfig:
    """Provide a fast test configuration (no real sleeps)."""
    return AppConfig(
        miners={"hosts": ["m1", "m2"], "password": "secret"},
        control={"poll_interval_ms": 10, "stop_retry_backoff_ms": 0},
    )


@pytest.fixture
def write_battery_file(tmp_path: Path) -> Callable[..., Path]:
    """Write a sniffer-style battery JSON file and return its path."""

    def _write(
        soc: float = 96,
        current: float | None = 2.5,
        age_seconds: float = 0.0,
        extra_batteries: dict[str, Any] | None = None,
        **fields: Any,
    ) -> Path:
        ts = (datetime.now(timezone.utc) - timedelta(seconds=age_seconds)).isoformat()
        entry: dict[str, Any] = {
            "timestamp": ts,
            "slave_id": 1,
            "soc_pct": soc,
            "voltage_v": 53.2,
            "current_a": current,
            "temperature_c": 24,
            "cycle_count": 12,
            "raw_registers": [1, 2, 3],
        }
        entry.update(fields)
        batteries = {"1": entry}
        batteries.update(extra_batteries or {})
        path = tmp_path / "battery_data.json"
        path.write_text(json.dumps({"updated": ts, "batteries": batteries}))
        return path

    return _write
