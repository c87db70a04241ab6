"""Fleet-level fan-out over all load units."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Sequence

from solar_miner.config.schema import MinersConfig
from solar_miner.loads.adapters.braiins import BraiinsMiner
from solar_miner.loads.base import LoadUnit, ReconciliationError, UnitOutcome

logger = logging.getLogger(__name__)

UnitOperation = Callable[[LoadUnit], Awaitable[Any]]


class MinerFleet:
    """Runs operations against every unit concurrently and reports per-unit outcomes.

    A failing unit never prevents the others from being commanded.
    """

    def __init__(self, units: Sequence[LoadUnit]) -> None:
        self._units = list(units)

    @classmethod
    def from_config(cls, config: MinersConfig) -> MinerFleet:
        return cls([
            BraiinsMiner(
                host,
                config.password,
                username=config.username,
                timeout=config.request_timeout_seconds,
                session_ttl_seconds=config.session_ttl_seconds,
            )
            for host in config.hosts
        ])

    @property
    def units(self) -> list[LoadUnit]:
        return list(self._units)

    @property
    def unit_ids(self) -> list[str]:
        return [u.unit_id for u in self._units]

    def __len__(self) -> int:
        return len(self._units)

    async def fan_out(self, operation: UnitOperation) -> list[UnitOutcome]:
        """Apply ``operation`` to every unit concurrently, collecting all outcomes."""
        results = await asyncio.gather(
            *(operation(unit) for unit in self._units),
            return_exceptions=True,
        )
        outcomes = []
        for unit, result in zip(self._units, results):
            if isinstance(result, BaseException):
                if isinstance(result, asyncio.CancelledError):
                    raise result
                outcomes.append(UnitOutcome(unit_id=unit.unit_id, success=False, error=str(result)))
            else:
                value = float(result) if isinstance(result, (int, float)) else None
                outcomes.append(UnitOutcome(unit_id=unit.unit_id, success=True, value=value))
        return outcomes

    async def start_all(self, power_target_w: float) -> list[UnitOutcome]:
        """Start every unit, then apply the power target to it."""

        async def _start(unit: LoadUnit) -> None:
            await unit.start()
            await unit.set_power_target(power_target_w)

        return await self.fan_out(_start)

    async def stop_all(self) -> list[UnitOutcome]:
        return await self.fan_out(lambda unit: unit.stop())

    async def aggregate_power_draw_w(self) -> float:
        """Sum consumption across reachable units.

        Units that fail to answer are excluded from the sum.

        Raises:
            ReconciliationError: if no unit answered at all.
        """
        outcomes = await self.fan_out(lambda unit: unit.get_power_draw_w())
        ok = [o for o in outcomes if o.success]
        for o in outcomes:
            if not o.success:
                logger.debug("Power query failed for %s: %s", o.unit_id, o.error)
        if self._units and not ok:
            raise ReconciliationError(
                f"Power draw query failed for all {len(self._units)} miners"
            )
        return sum(o.value or 0.0 for o in ok)

    async def close(self) -> None:
        for unit in self._units:
            try:
                await unit.close()
            except Exception:
                logger.exception("Failed to close miner %s", unit.unit_id)
