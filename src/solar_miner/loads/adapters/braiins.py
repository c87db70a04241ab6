"""Braiins OS miner adapter (local GraphQL API).

Auth: ``auth.login`` mutation returns a ``session_id`` cookie valid for one
hour. Sessions are refreshed proactively after ``session_ttl_seconds`` and
re-established once on a 401.
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any

import httpx
from pydantic import BaseModel, ValidationError

from solar_miner.loads.base import UnitCommandError

logger = logging.getLogger(__name__)

_START = "mutation{bosminer{start{...on VoidResult{void}...on BosminerError{message}}}}"
_STOP = "mutation{bosminer{stop{...on VoidResult{void}...on BosminerError{message}}}}"
_SET_POWER_TARGET = (
    "mutation{bosminer{config{updateAutotuning(input:{mode:POWER_TARGET,powerTarget:%d},apply:true)"
    "{...on AutotuningOut{autotuning{mode powerTarget}}"
    "...on AutotuningError{message powerTarget}...on AttributeError{message}}}}}"
)
_POWER_DRAW = "{bosminer{info{summary{power{approxConsumptionW}}}}}"
_SUMMARY = (
    "{bosminer{info{modelName summary{realHashrate{mhs15M} poolStatus "
    "power{approxConsumptionW limitW} tunerStatus temperature{degreesC}}}}}"
)


def _dig(data: Any, *keys: str) -> Any:
    """Walk nested dicts, returning None when any level is missing."""
    for key in keys:
        if not isinstance(data, dict):
            return None
        data = data.get(key)
    return data


class MinerSummary(BaseModel):
    """Diagnostic snapshot of a miner."""

    model_name: str | None = None
    hashrate_mhs_15m: float | None = None
    pool_status: str | None = None
    consumption_w: float | None = None
    power_limit_w: float | None = None
    tuner_status: str | None = None
    temperature_c: float | None = None

    @classmethod
    def from_info(cls, info: dict[str, Any]) -> MinerSummary:
        summary = info.get("summary") or {}
        return cls.model_validate({
            "model_name": info.get("modelName"),
            "hashrate_mhs_15m": _dig(summary, "realHashrate", "mhs15M"),
            "pool_status": summary.get("poolStatus"),
            "consumption_w": _dig(summary, "power", "approxConsumptionW"),
            "power_limit_w": _dig(summary, "power", "limitW"),
            "tuner_status": summary.get("tunerStatus"),
            "temperature_c": _dig(summary, "temperature", "degreesC"),
        })


class BraiinsMiner:
    """Controls one Braiins OS miner over HTTP GraphQL."""

    def __init__(
        self,
        host: str,
        password: str,
        username: str = "root",
        client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
        session_ttl_seconds: int = 3000,
    ) -> None:
        self._host = host
        self._username = username
        self._password = password
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = client is None
        self._url = f"http://{host}/graphql"
        self._session_ttl = session_ttl_seconds
        self._session_id: str | None = None
        self._session_expiry = 0.0

    @property
    def unit_id(self) -> str:
        return self._host

    @property
    def has_session(self) -> bool:
        return self._session_id is not None and time.monotonic() < self._session_expiry

    async def start(self) -> None:
        data = await self.graphql(_START)
        err = _dig(data, "data", "bosminer", "start", "message")
        if err:
            raise UnitCommandError(self.unit_id, f"Start failed: {err}")
        logger.info("Miner %s: mining started", self._host)

    async def stop(self) -> None:
        data = await self.graphql(_STOP)
        err = _dig(data, "data", "bosminer", "stop", "message")
        if err:
            raise UnitCommandError(self.unit_id, f"Stop failed: {err}")
        logger.info("Miner %s: mining stopped", self._host)

    async def set_power_target(self, watts: float) -> None:
        data = await self.graphql(_SET_POWER_TARGET % round(watts))
        err = _dig(data, "data", "bosminer", "config", "updateAutotuning", "message")
        if err:
            raise UnitCommandError(self.unit_id, f"setPowerTarget failed: {err}")
        logger.info("Miner %s: power target set to %dW", self._host, round(watts))

    async def get_power_draw_w(self) -> float:
        data = await self.graphql(_POWER_DRAW)
        watts = _dig(data, "data", "bosminer", "info", "summary", "power", "approxConsumptionW")
        try:
            return float(watts or 0)
        except (TypeError, ValueError) as e:
            raise UnitCommandError(self.unit_id, f"Invalid power reading {watts!r}") from e

    async def get_summary(self) -> MinerSummary:
        data = await self.graphql(_SUMMARY)
        info = _dig(data, "data", "bosminer", "info")
        if not isinstance(info, dict):
            raise UnitCommandError(self.unit_id, "Summary missing from response")
        try:
            return MinerSummary.from_info(info)
        except ValidationError as e:
            raise UnitCommandError(self.unit_id, f"Invalid summary: {e}") from e

    async def graphql(self, query: str) -> dict[str, Any]:
        """POST a GraphQL document, authenticating as needed.

        Raises:
            UnitCommandError: on transport errors, non-2xx responses, or
                non-JSON bodies.
        """
        try:
            if not self.has_session:
                await self._login()

            resp = await self._post(query, authenticated=True)
            if resp.status_code == 401:
                logger.debug("Miner %s: session rejected, logging in again", self._host)
                await self._login()
                resp = await self._post(query, authenticated=True)

            if not resp.is_success:
                raise UnitCommandError(self.unit_id, f"GraphQL failed: {resp.status_code}")
            return self._decode(resp)
        except httpx.HTTPError as e:
            raise UnitCommandError(self.unit_id, e) from e

    async def close(self) -> None:
        """Close the HTTP client if we own it."""
        if self._owns_client:
            await self._client.aclose()

    async def _login(self) -> None:
        query = (
            f"mutation{{auth{{login(username:{json.dumps(self._username)},"
            f"password:{json.dumps(self._password)})"
            "{...on VoidResult{void}...on AuthError{message}}}}"
        )
        resp = await self._post(query, authenticated=False)
        if not resp.is_success:
            raise UnitCommandError(self.unit_id, f"Login HTTP error: {resp.status_code}")

        err = _dig(self._decode(resp), "data", "auth", "login", "message")
        if err:
            raise UnitCommandError(self.unit_id, f"Login failed: {err}")

        session_id = resp.cookies.get("session_id")
        if not session_id:
            raise UnitCommandError(self.unit_id, "No session cookie in login response")

        self._session_id = session_id
        self._session_expiry = time.monotonic() + self._session_ttl
        logger.debug("Miner %s: logged in", self._host)

    async def _post(self, query: str, authenticated: bool) -> httpx.Response:
        headers = {}
        if authenticated and self._session_id:
            headers["Cookie"] = f"session_id={self._session_id}"
        return await self._client.post(self._url, json={"query": query}, headers=headers)

    def _decode(self, resp: httpx.Response) -> dict[str, Any]:
        try:
            data = resp.json()
        except ValueError as e:
            raise UnitCommandError(self.unit_id, "Response is not valid JSON") from e
        if not isinstance(data, dict):
            raise UnitCommandError(self.unit_id, "Unexpected GraphQL response shape")
        return data
