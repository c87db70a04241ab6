"""Tests for Application lifecycle wiring and the CLI entry point."""

from __future__ import annotations

import asyncio
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from solar_miner.config.schema import AppConfig
from solar_miner.control.loop import ControlState
from solar_miner.loads.fleet import MinerFleet
from solar_miner.main import Application, main
from solar_miner.telemetry.base import Reading
from solar_miner.telemetry.json_file import JsonFileTelemetrySource


def _make_telemetry(soc: float = 93.0) -> AsyncMock:
    telemetry = AsyncMock()
    telemetry.fetch_reading = AsyncMock(return_value=Reading(soc=soc, battery_current=1.0))
    return telemetry


def _make_fleet(draw_w: float = 0.0) -> MagicMock:
    fleet = MagicMock(spec=MinerFleet)
    fleet.unit_ids = ["m1"]
    fleet.__len__.return_value = 1
    fleet.aggregate_power_draw_w = AsyncMock(return_value=draw_w)
    fleet.stop_all = AsyncMock(return_value=[])
    fleet.start_all = AsyncMock(return_value=[])
    fleet.close = AsyncMock()
    return fleet


class TestApplicationConstruction:
    def test_default_collaborators(self, config: AppConfig) -> None:
        app = Application(config)
        assert app.config is config
        assert app._running is False
        assert isinstance(app._telemetry, JsonFileTelemetrySource)
        assert isinstance(app._fleet, MinerFleet)
        assert app._fleet.unit_ids == ["m1", "m2"]
        assert app.control_loop.control_state == ControlState.IDLE


class TestApplicationLifecycle:
    @pytest.mark.asyncio
    async def test_start_then_stop(self, config: AppConfig) -> None:
        telemetry, fleet = _make_telemetry(), _make_fleet()
        app = Application(config, telemetry=telemetry, fleet=fleet)

        task = asyncio.create_task(app.start())
        await asyncio.sleep(0.05)
        await app.stop()
        await asyncio.wait_for(task, timeout=1.0)

        telemetry.connect.assert_awaited_once()
        telemetry.disconnect.assert_awaited_once()
        fleet.close.assert_awaited_once()
        fleet.stop_all.assert_not_called()
        assert app._running is False
        assert app.control_loop.state.iteration_count >= 1

    @pytest.mark.asyncio
    async def test_stop_while_mining_stops_fleet(self, config: AppConfig) -> None:
        # Fleet draws power, so the first poll reconciles to MINING
        telemetry, fleet = _make_telemetry(soc=93.0), _make_fleet(draw_w=1200.0)
        app = Application(config, telemetry=telemetry, fleet=fleet)

        task = asyncio.create_task(app.start())
        await asyncio.sleep(0.05)
        assert app.control_loop.control_state == ControlState.MINING

        await app.stop()
        await task

        fleet.stop_all.assert_awaited_once()
        assert app.control_loop.control_state == ControlState.IDLE

    @pytest.mark.asyncio
    async def test_stop_is_idempotent(self, config: AppConfig) -> None:
        telemetry, fleet = _make_telemetry(), _make_fleet()
        app = Application(config, telemetry=telemetry, fleet=fleet)

        await asyncio.gather(app.stop(), app.stop())
        await app.stop()

        telemetry.disconnect.assert_awaited_once()
        fleet.close.assert_awaited_once()


class TestMain:
    def test_missing_password_exits_non_zero(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.chdir(tmp_path)
        monkeypatch.setattr("solar_miner.main.setup_logging", MagicMock())
        with pytest.raises(SystemExit) as exc_info:
            main(["--config", str(tmp_path / "none.yaml")])
        assert exc_info.value.code == 1
