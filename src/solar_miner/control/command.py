"""Fleet start/stop commands with per-unit outcome reporting."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from solar_miner.loads.base import UnitOutcome
from solar_miner.loads.fleet import MinerFleet

logger = logging.getLogger(__name__)


@dataclass
class StartResult:
    """Outcome of a start command across the fleet."""

    target_w: float
    outcomes: list[UnitOutcome] = field(default_factory=list)

    @property
    def failed(self) -> list[UnitOutcome]:
        return [o for o in self.outcomes if not o.success]

    @property
    def success(self) -> bool:
        return not self.failed


@dataclass
class StopResult:
    """Outcome of a (retried) stop command across the fleet."""

    success: bool
    attempts: int
    outcomes: list[UnitOutcome] = field(default_factory=list)  # From the last attempt

    @property
    def failed(self) -> list[UnitOutcome]:
        return [o for o in self.outcomes if not o.success]


async def start_fleet(fleet: MinerFleet, power_target_w: float, max_power_target_w: float) -> StartResult:
    """Start every miner and apply the capped power target.

    Partial starts are accepted; reconciliation on the next poll picks up the
    real fleet state. No retries.
    """
    target = min(power_target_w, max_power_target_w)
    outcomes = await fleet.start_all(target)
    result = StartResult(target_w=target, outcomes=outcomes)
    for o in result.failed:
        logger.error("Failed to start miner %s: %s", o.unit_id, o.error)
    return result


async def stop_fleet(fleet: MinerFleet, attempts: int = 3, backoff_seconds: float = 5.0) -> StopResult:
    """Stop every miner, retrying the whole fleet until no unit fails.

    Best effort: never raises. After the last failed attempt a warning is
    logged and the caller carries on.
    """
    outcomes: list[UnitOutcome] = []
    for attempt in range(1, attempts + 1):
        try:
            outcomes = await fleet.stop_all()
        except Exception as e:
            logger.exception("Stop attempt %d/%d raised", attempt, attempts)
            outcomes = [UnitOutcome(unit_id=uid, success=False, error=str(e)) for uid in fleet.unit_ids]

        failed = [o for o in outcomes if not o.success]
        if not failed:
            return StopResult(success=True, attempts=attempt, outcomes=outcomes)

        for o in failed:
            logger.error(
                "Failed to stop miner %s (attempt %d/%d): %s",
                o.unit_id, attempt, attempts, o.error,
            )
        if attempt < attempts:
            await asyncio.sleep(backoff_seconds)

    logger.warning("Some miners may still be running after %d stop attempts", attempts)
    return StopResult(success=False, attempts=attempts, outcomes=outcomes)
