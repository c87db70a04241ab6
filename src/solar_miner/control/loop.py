"""Async control loop — SOC-driven IDLE/MINING state machine."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum

from solar_miner.config.schema import AppConfig
from solar_miner.control.command import StartResult, StopResult, start_fleet, stop_fleet
from solar_miner.control.window import ChargeWindow
from solar_miner.loads.fleet import MinerFleet
from solar_miner.logging.context import log_context
from solar_miner.telemetry.base import Reading, TelemetrySource

logger = logging.getLogger(__name__)


class ControlState(str, Enum):
    """Whether the fleet is believed to be drawing power."""

    IDLE = "IDLE"
    MINING = "MINING"


@dataclass
class LoopState:
    """Snapshot of the control loop state."""

    control_state: ControlState = ControlState.IDLE
    consecutive_errors: int = 0
    iteration_count: int = 0
    last_iteration_at: datetime | None = None
    last_reading: Reading | None = None
    last_power_draw_w: float | None = None
    last_start: StartResult | None = None
    last_stop: StopResult | None = None
    is_running: bool = False


class ControlLoop:
    """Main polling loop.

    Every poll (default 30 s):
    1. Read battery telemetry (fail-safe stop after repeated failures)
    2. Record battery current into the charge window
    3. Reconcile believed state with the fleet's actual power draw
    4. Apply start/stop hysteresis on SOC
    """

    def __init__(
        self,
        config: AppConfig,
        telemetry: TelemetrySource,
        fleet: MinerFleet,
        window: ChargeWindow | None = None,
    ) -> None:
        self._config = config
        self._telemetry = telemetry
        self._fleet = fleet
        self._window = window if window is not None else ChargeWindow(config.thresholds.window_size)
        self._state = LoopState()
        self._stop_event = asyncio.Event()

    @property
    def state(self) -> LoopState:
        return self._state

    @property
    def control_state(self) -> ControlState:
        return self._state.control_state

    @property
    def window(self) -> ChargeWindow:
        return self._window

    async def run(self) -> None:
        """Poll until stop() is called.

        The inter-poll sleep waits on the stop event, so a stop request takes
        effect as soon as the current iteration completes.
        """
        self._state.is_running = True
        self._stop_event.clear()
        interval = self._config.control.poll_interval_seconds

        self._log_banner()

        try:
            while not self._stop_event.is_set():
                await self._tick()
                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=interval)
                    break  # stop_event was set
                except asyncio.TimeoutError:
                    pass  # Normal — just means interval elapsed
        finally:
            self._state.is_running = False
            logger.info("Control loop stopped after %d iterations", self._state.iteration_count)

    def stop(self) -> None:
        """Signal the loop to stop after the current iteration."""
        self._stop_event.set()

    async def tick_once(self) -> ControlState:
        """Execute a single iteration (for testing)."""
        await self._tick()
        return self._state.control_state

    async def shutdown(self) -> None:
        """Stop the loop and, if mining, stop the fleet regardless of SOC."""
        self.stop()
        if self._state.control_state == ControlState.MINING:
            logger.info("Stopping all miners before exit")
            await self._stop_fleet()
            self._state.control_state = ControlState.IDLE

    def is_charging_sustained(self, soc: float) -> bool:
        """Whether surplus charge justifies starting the fleet."""
        thresholds = self._config.thresholds
        # Batteries full: solar has nowhere else to go
        if soc >= thresholds.batteries_full_soc:
            return True
        if not self._window.is_full():
            return False
        return self._window.average() >= thresholds.min_charge_current_a

    async def _tick(self) -> None:
        self._state.iteration_count += 1
        self._state.last_iteration_at = datetime.now(timezone.utc)
        with log_context(iteration=self._state.iteration_count):
            await self._iterate()

    async def _iterate(self) -> None:
        try:
            reading = await self._telemetry.fetch_reading()
        except Exception as e:
            await self._handle_telemetry_failure(e)
            return

        self._state.consecutive_errors = 0
        self._state.last_reading = reading

        if reading.battery_current is not None:
            self._window.record(reading.battery_current)

        # Don't trust internal state alone; reconcile before deciding
        corrected = await self._reconcile()
        adopted_running = corrected and self._state.control_state == ControlState.MINING

        extras = reading.describe_extras()
        logger.info(
            "SOC: %s%% | State: %s | Miners: %d%s",
            reading.soc,
            self._state.control_state.value,
            len(self._fleet),
            f" | {extras}" if extras else "",
        )

        # Miners found running are not stopped in the same poll they were discovered
        await self._apply_hysteresis(reading.soc, allow_stop=not adopted_running)

    async def _handle_telemetry_failure(self, error: Exception) -> None:
        self._state.consecutive_errors += 1
        max_errors = self._config.control.max_consecutive_errors
        logger.error("Error (%d/%d): %s", self._state.consecutive_errors, max_errors, error)

        if self._state.consecutive_errors >= max_errors:
            logger.error(
                "FAIL-SAFE: %d consecutive errors, stopping miners to protect batteries",
                self._state.consecutive_errors,
            )
            await self._stop_fleet()
            self._state.control_state = ControlState.IDLE

    async def _reconcile(self) -> bool:
        """Correct the believed state from the fleet's measured power draw.

        Returns:
            True if the state was corrected.
        """
        try:
            draw_w = await self._fleet.aggregate_power_draw_w()
        except Exception as e:
            logger.warning(
                "Could not query miner power draw, keeping state %s: %s",
                self._state.control_state.value, e,
            )
            return False

        self._state.last_power_draw_w = draw_w
        running = draw_w > self._config.thresholds.active_power_threshold_w

        if running and self._state.control_state == ControlState.IDLE:
            logger.info("Detected miners running (%.0fW) while state was IDLE, correcting state", draw_w)
            self._state.control_state = ControlState.MINING
            return True
        if not running and self._state.control_state == ControlState.MINING:
            logger.info("Detected miners stopped (%.0fW) while state was MINING, correcting state", draw_w)
            self._state.control_state = ControlState.IDLE
            return True
        return False

    async def _apply_hysteresis(self, soc: float, allow_stop: bool = True) -> None:
        thresholds = self._config.thresholds
        state = self._state.control_state

        if state == ControlState.IDLE and soc >= thresholds.start_soc:
            if self.is_charging_sustained(soc):
                if soc >= thresholds.batteries_full_soc:
                    reason = f"batteries full (SOC {soc}% >= {thresholds.batteries_full_soc}%)"
                else:
                    reason = (
                        f"avg current {self._window.average():.1f}A >= "
                        f"{thresholds.min_charge_current_a}A"
                    )
                logger.info("SOC %s%% >= %s%% and %s, starting miners", soc, thresholds.start_soc, reason)
                miners = self._config.miners
                self._state.last_start = await start_fleet(
                    self._fleet, miners.power_target_w, miners.max_power_target_w,
                )
                self._state.control_state = ControlState.MINING
            else:
                avg = f"{self._window.average():.1f}" if len(self._window) else "n/a"
                logger.info(
                    "SOC %s%% >= %s%% but waiting for sustained charge "
                    "(avg %sA, need >= %sA over %d readings, have %d)",
                    soc,
                    thresholds.start_soc,
                    avg,
                    thresholds.min_charge_current_a,
                    self._window.capacity,
                    len(self._window),
                )
        elif state == ControlState.MINING and soc < thresholds.stop_soc:
            if not allow_stop:
                logger.info(
                    "SOC %s%% < %s%%, stop deferred to next poll after adopting running miners",
                    soc, thresholds.stop_soc,
                )
                return
            logger.info("SOC %s%% < %s%%, stopping miners", soc, thresholds.stop_soc)
            await self._stop_fleet()
            self._state.control_state = ControlState.IDLE

    async def _stop_fleet(self) -> StopResult:
        control = self._config.control
        result = await stop_fleet(
            self._fleet,
            attempts=control.stop_attempts,
            backoff_seconds=control.stop_retry_backoff_seconds,
        )
        self._state.last_stop = result
        return result

    def _log_banner(self) -> None:
        t = self._config.thresholds
        m = self._config.miners
        logger.info("Solar Miner controller starting")
        logger.info("Thresholds: start >= %s%%, stop < %s%%", t.start_soc, t.stop_soc)
        logger.info("Miners: %s", ", ".join(self._fleet.unit_ids))
        logger.info("Power target: %dW per miner (max %dW)", m.power_target_w, m.max_power_target_w)
        logger.info("Poll interval: %ss", self._config.control.poll_interval_seconds)
        logger.info(
            "Charge check: avg current >= %sA over %d readings (skip at SOC >= %s%%)",
            t.min_charge_current_a, t.window_size, t.batteries_full_soc,
        )
