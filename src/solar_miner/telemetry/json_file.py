"""Battery telemetry from the JSON file written by the RS-485 Modbus sniffer.

The sniffer passively decodes BMS traffic and rewrites a document like::

    {
      "updated": "2024-06-01T10:15:00Z",
      "batteries": {
        "1": {"timestamp": "2024-06-01T10:15:00Z", "slave_id": 1, "soc_pct": 96,
              "voltage_v": 53.20, "current_a": 2.50, "temperature_c": 24, ...}
      }
    }

Only the first battery entry is used (slave ID 1 in typical setups).
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from solar_miner.config.schema import TelemetryConfig
from solar_miner.telemetry.base import Reading, TelemetryError

logger = logging.getLogger(__name__)


class BatteryEntry(BaseModel):
    """One battery record as written by the sniffer."""

    model_config = ConfigDict(extra="ignore")

    timestamp: datetime
    soc_pct: float = Field(ge=0.0, le=100.0)
    slave_id: int | None = None
    voltage_v: float | None = None
    current_a: float | None = None
    temperature_c: float | None = None
    cycle_count: int | None = None
    soh_pct: float | None = None
    max_charge_current_a: float | None = None
    max_discharge_current_a: float | None = None
    max_charge_voltage_v: float | None = None


class BatteryFile(BaseModel):
    model_config = ConfigDict(extra="ignore")

    updated: str | None = None
    # Validated per entry; only the first battery is read
    batteries: dict[str, Any] = Field(default_factory=dict)


class JsonFileTelemetrySource:
    """Reads the latest battery state from a JSON file on local disk."""

    def __init__(self, config: TelemetryConfig) -> None:
        self._path = Path(config.battery_json)
        self._stale_after = config.stale_after_seconds
        self._connected = False

    @property
    def path(self) -> Path:
        return self._path

    @property
    def connected(self) -> bool:
        return self._connected

    async def connect(self) -> None:
        self._connected = True
        logger.info("Reading battery data from %s", self._path)

    async def disconnect(self) -> None:
        self._connected = False

    async def fetch_reading(self) -> Reading:
        """Read and validate the newest battery entry."""
        if not self._connected:
            await self.connect()

        try:
            raw = await asyncio.to_thread(self._path.read_text, encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise TelemetryError(f"Cannot read {self._path}: {e}") from e

        try:
            document = BatteryFile.model_validate_json(raw)
        except ValidationError as e:
            raise TelemetryError(f"Invalid battery data in {self._path}: {e}") from e

        if not document.batteries:
            raise TelemetryError(f"No battery data in {self._path}")

        slave, raw_entry = next(iter(document.batteries.items()))
        try:
            entry = BatteryEntry.model_validate(raw_entry)
        except ValidationError as e:
            raise TelemetryError(f"Invalid data for battery {slave} in {self._path}: {e}") from e

        observed_at = entry.timestamp
        if observed_at.tzinfo is None:
            observed_at = observed_at.replace(tzinfo=timezone.utc)

        # Staleness is judged from the battery's own timestamp, not file mtime
        age = (datetime.now(timezone.utc) - observed_at).total_seconds()
        if age > self._stale_after:
            raise TelemetryError(f"Data is stale (last update {round(age)}s ago)")

        return Reading(
            soc=entry.soc_pct,
            battery_voltage=entry.voltage_v,
            battery_current=entry.current_a,
            temperature=entry.temperature_c,
            pv_power=None,
            observed_at=observed_at,
        )
