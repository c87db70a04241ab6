"""Protocol and result types for controllable load units (miners)."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable


class UnitCommandError(Exception):
    """A single load unit failed to execute a command."""

    def __init__(self, unit_id: str, cause: str | BaseException) -> None:
        self.unit_id = unit_id
        self.cause = cause
        super().__init__(f"[miner {unit_id}] {cause}")


class ReconciliationError(Exception):
    """Aggregate power draw of the fleet could not be determined."""


@dataclass
class UnitOutcome:
    """Result of one operation against one unit."""

    unit_id: str
    success: bool
    error: str | None = None
    value: float | None = None


@runtime_checkable
class LoadUnit(Protocol):
    """Protocol for a switchable, power-targetable load.

    Implementations: BraiinsMiner.
    """

    @property
    def unit_id(self) -> str:
        """Unique identifier for this unit (its host)."""
        ...

    async def start(self) -> None:
        """Start drawing power. Raises UnitCommandError on failure."""
        ...

    async def stop(self) -> None:
        """Stop drawing power. Raises UnitCommandError on failure."""
        ...

    async def set_power_target(self, watts: float) -> None:
        """Set the unit's power target. Raises UnitCommandError on failure."""
        ...

    async def get_power_draw_w(self) -> float:
        """Current approximate consumption in watts."""
        ...

    async def close(self) -> None:
        """Release network resources."""
        ...
