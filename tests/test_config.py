"""Tests for configuration loading and validation."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from solar_miner.config.manager import ConfigError, ConfigManager
from solar_miner.config.schema import AppConfig, MinersConfig, ThresholdsConfig


class TestAppConfig:
    def test_default_config_is_valid(self) -> None:
        config = AppConfig()
        assert config.telemetry.battery_json == "/tmp/battery_data.json"
        assert config.telemetry.stale_after_seconds == 60
        assert config.miners.hosts == ["miner1"]
        assert config.miners.power_target_w == 700
        assert config.miners.max_power_target_w == 1200
        assert config.thresholds.start_soc == 95
        assert config.thresholds.stop_soc == 92
        assert config.thresholds.min_charge_current_a == 2.0
        assert config.thresholds.window_size == 6
        assert config.thresholds.batteries_full_soc == 100
        assert config.thresholds.active_power_threshold_w == 50
        assert config.control.poll_interval_ms == 30000
        assert config.control.max_consecutive_errors == 3
        assert config.control.stop_attempts == 3
        assert config.control.stop_retry_backoff_seconds == 5.0

    def test_stop_soc_must_be_below_start_soc(self) -> None:
        with pytest.raises(ValidationError):
            ThresholdsConfig(start_soc=90, stop_soc=90)

    def test_window_size_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            ThresholdsConfig(window_size=0)

    def test_hosts_split_from_string(self) -> None:
        miners = MinersConfig(hosts=" 10.0.0.1, 10.0.0.2 ,,")
        assert miners.hosts == ["10.0.0.1", "10.0.0.2"]


class TestConfigManager:
    def test_environment_overrides(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("MINER_HOSTS", "a.local,b.local")
        monkeypatch.setenv("MINER_PASSWORD", "hunter2")
        monkeypatch.setenv("START_MINING_SOC", "97")
        monkeypatch.setenv("STOP_MINING_SOC", "90")
        monkeypatch.setenv("MIN_CHARGE_CURRENT_A", "3.5")
        monkeypatch.setenv("CURRENT_WINDOW_SIZE", "4")
        monkeypatch.setenv("POLL_INTERVAL_MS", "15000")

        config = ConfigManager(config_path=tmp_path / "missing.yaml").load()

        assert config.miners.hosts == ["a.local", "b.local"]
        assert config.miners.password == "hunter2"
        assert config.thresholds.start_soc == 97
        assert config.thresholds.stop_soc == 90
        assert config.thresholds.min_charge_current_a == 3.5
        assert config.thresholds.window_size == 4
        assert config.control.poll_interval_seconds == 15.0

    def test_yaml_file_with_env_precedence(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        path = tmp_path / "config.yaml"
        path.write_text(
            "miners:\n  hosts: [m1]\n  password: from-file\n  power_target_w: 900\n"
            "thresholds:\n  batteries_full_soc: 99\n"
        )
        monkeypatch.setenv("MINER_POWER_TARGET_W", "800")

        config = ConfigManager(config_path=path).load()

        assert config.miners.password == "from-file"
        assert config.miners.power_target_w == 800
        assert config.thresholds.batteries_full_soc == 99

    def test_env_file(self, tmp_path: Path) -> None:
        env_file = tmp_path / ".env"
        env_file.write_text("MINER_PASSWORD=dotenv\nMINER_HOSTS=x1\n")

        config = ConfigManager(config_path=tmp_path / "none.yaml", env_file=env_file).load()

        assert config.miners.password == "dotenv"
        assert config.miners.hosts == ["x1"]

    def test_missing_password_fails_fast(self, tmp_path: Path) -> None:
        mgr = ConfigManager(config_path=tmp_path / "none.yaml")
        with pytest.raises(ConfigError, match="MINER_PASSWORD"):
            mgr.load()

    def test_missing_password_allowed_when_not_required(self, tmp_path: Path) -> None:
        config = ConfigManager(config_path=tmp_path / "none.yaml").load(require_credentials=False)
        assert config.miners.password == ""

    def test_empty_host_list_fails(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("MINER_PASSWORD", "pw")
        monkeypatch.setenv("MINER_HOSTS", " , ")
        with pytest.raises(ConfigError, match="MINER_HOSTS"):
            ConfigManager(config_path=tmp_path / "none.yaml").load()

    def test_invalid_thresholds_raise_config_error(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("MINER_PASSWORD", "pw")
        monkeypatch.setenv("START_MINING_SOC", "80")
        monkeypatch.setenv("STOP_MINING_SOC", "85")
        with pytest.raises(ConfigError):
            ConfigManager(config_path=tmp_path / "none.yaml").load()

    def test_non_numeric_env_raises_config_error(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CURRENT_WINDOW_SIZE", "six")
        with pytest.raises(ConfigError):
            ConfigManager(config_path=tmp_path / "none.yaml").load()

    def test_empty_env_value_keeps_default(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("MINER_PASSWORD", "pw")
        monkeypatch.setenv("START_MINING_SOC", "")
        monkeypatch.setenv("CURRENT_WINDOW_SIZE", "")

        config = ConfigManager(config_path=tmp_path / "none.yaml").load()

        assert config.thresholds.start_soc == 95
        assert config.thresholds.window_size == 6

    def test_config_property_before_load(self, tmp_path: Path) -> None:
        mgr = ConfigManager(config_path=tmp_path / "none.yaml")
        with pytest.raises(RuntimeError):
            _ = mgr.config
