"""Battery telemetry model and source protocol."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Protocol, runtime_checkable


class TelemetryError(Exception):
    """Battery data could not be read, was empty, or is stale."""


@dataclass(frozen=True)
class Reading:
    """Snapshot of the battery bank at one poll."""

    soc: float  # 0 to 100
    battery_voltage: float | None = None
    battery_current: float | None = None  # Positive = charging, negative = discharging
    temperature: float | None = None
    pv_power: float | None = None
    observed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def describe_extras(self) -> str:
        """Format the optional fields for the per-poll status line."""
        extras = []
        if self.battery_voltage is not None:
            extras.append(f"{self.battery_voltage}V")
        if self.battery_current is not None:
            extras.append(f"{self.battery_current}A")
        if self.temperature is not None:
            extras.append(f"{self.temperature}°C")
        if self.pv_power is not None:
            extras.append(f"PV: {self.pv_power}W")
        return " | ".join(extras)


@runtime_checkable
class TelemetrySource(Protocol):
    """Protocol for battery telemetry sources.

    Implementations: JsonFileTelemetrySource.
    """

    async def connect(self) -> None:
        """Prepare the source for reading."""
        ...

    async def disconnect(self) -> None:
        """Release any resources held by the source."""
        ...

    async def fetch_reading(self) -> Reading:
        """Return the current battery reading.

        Raises:
            TelemetryError: if the data is unreadable, empty, or stale.
        """
        ...
