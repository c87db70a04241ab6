"""Solar Miner application entry point and lifecycle orchestrator.

Startup sequence:
  config → logging → telemetry source → miner fleet → control loop

Shutdown (SIGINT/SIGTERM):
  stop polling → finish current iteration → stop miners if mining →
  disconnect telemetry → close miner clients
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import os
import signal
import sys
from pathlib import Path

from solar_miner import __version__
from solar_miner.config.manager import ConfigError, ConfigManager
from solar_miner.config.schema import AppConfig
from solar_miner.control.loop import ControlLoop
from solar_miner.loads.fleet import MinerFleet
from solar_miner.logging.structured import setup_logging
from solar_miner.telemetry.base import TelemetrySource
from solar_miner.telemetry.json_file import JsonFileTelemetrySource

logger = logging.getLogger(__name__)


class Application:
    """Main application lifecycle manager.

    Wires telemetry, fleet and control loop together and manages
    startup/shutdown ordering.
    """

    def __init__(
        self,
        config: AppConfig,
        telemetry: TelemetrySource | None = None,
        fleet: MinerFleet | None = None,
    ) -> None:
        self.config = config
        self._telemetry = telemetry or JsonFileTelemetrySource(config.telemetry)
        self._fleet = fleet if fleet is not None else MinerFleet.from_config(config.miners)
        self._control_loop = ControlLoop(config, self._telemetry, self._fleet)
        self._running = False
        self._loop_task: asyncio.Task | None = None
        self._stop_task: asyncio.Task | None = None

    @property
    def control_loop(self) -> ControlLoop:
        return self._control_loop

    async def start(self) -> None:
        """Connect telemetry and run the control loop until stopped."""
        logger.info("Starting Solar Miner v%s", __version__)
        self._running = True
        await self._telemetry.connect()
        self._loop_task = asyncio.create_task(self._control_loop.run())
        await self._loop_task

    async def stop(self) -> None:
        """Run the shutdown sequence once; concurrent callers wait for it."""
        if self._stop_task is None:
            self._stop_task = asyncio.create_task(self._shutdown())
        await self._stop_task

    async def _shutdown(self) -> None:
        logger.info("Shutting down...")
        self._control_loop.stop()

        # Let an in-flight iteration (and any stop retries) run to completion
        if self._loop_task is not None and not self._loop_task.done():
            await asyncio.wait([self._loop_task])

        await self._control_loop.shutdown()

        try:
            await self._telemetry.disconnect()
        except Exception:
            logger.exception("Failed to disconnect telemetry source")
        await self._fleet.close()

        self._running = False
        logger.info("Shutdown complete")


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="solar-miner",
        description="Run miners on surplus solar without over-discharging the battery bank.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=Path("config.yaml"),
        help="Optional YAML config file; environment variables take precedence",
    )
    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Read environment variables from this file (default: ./.env if present)",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    """Entry point for the application."""
    args = _parse_args(argv)
    env_file = args.env_file
    if env_file is None and Path(".env").exists():
        env_file = Path(".env")

    try:
        config = ConfigManager(args.config, env_file).load()
    except ConfigError as e:
        setup_logging()
        logger.error("%s", e)
        sys.exit(1)

    setup_logging(config.logging)

    app = Application(config)
    stop_requested = False
    signal_count = 0
    exit_code = 0

    async def _run() -> None:
        nonlocal exit_code
        try:
            await app.start()
        except Exception as e:
            logger.exception("Fatal error: %s", e)
            exit_code = 1
        finally:
            with contextlib.suppress(Exception):
                await app.stop()

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    def _request_stop() -> None:
        nonlocal stop_requested, signal_count
        signal_count += 1
        if signal_count >= 2:
            os._exit(130)
        if stop_requested or loop.is_closed():
            return
        stop_requested = True
        loop.call_soon_threadsafe(lambda: asyncio.create_task(app.stop()))

    if sys.platform != "win32":
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, _request_stop)
    else:
        signal.signal(signal.SIGINT, lambda *_: _request_stop())
        if hasattr(signal, "SIGTERM"):
            signal.signal(signal.SIGTERM, lambda *_: _request_stop())

    try:
        loop.run_until_complete(_run())
    except KeyboardInterrupt:
        _request_stop()
        with contextlib.suppress(Exception):
            loop.run_until_complete(app.stop())
    finally:
        pending = [task for task in asyncio.all_tasks(loop) if not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            with contextlib.suppress(Exception):
                loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
        loop.close()

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
