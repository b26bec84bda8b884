"""
HTTP position history provider.

Fetches one vehicle's history from a fleet API:

    GET {base_url}/vehicles/{vehicle_id}/positions?from=...&to=...&maxPoints=...

The response is either a JSON list of position objects or an object
wrapping the list under "positions", "items" or "data". Transport errors
and HTTP error statuses propagate to the caller (the fan-out coordinator
records them as per-vehicle failures).
"""

import logging
import os
from datetime import datetime, timezone
from typing import Any, Optional

import httpx

from fleet_analytics.models.raw import RawPositionRecord


logger = logging.getLogger(__name__)

HISTORY_URL_ENV = "FLEET_HISTORY_URL"
DEFAULT_TIMEOUT_SECONDS = 30.0


class HttpPositionHistoryProvider:
    def __init__(
        self,
        base_url: str,
        client: Optional[httpx.AsyncClient] = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._client = client

    @classmethod
    def from_env(cls) -> Optional["HttpPositionHistoryProvider"]:
        """Provider for FLEET_HISTORY_URL, or None when it is not set."""
        base_url = os.getenv(HISTORY_URL_ENV)
        if not base_url:
            return None
        return cls(base_url)

    async def fetch_positions(
        self,
        vehicle_id: str,
        start: datetime,
        end: datetime,
        max_points: Optional[int] = None,
    ) -> list[RawPositionRecord]:
        url = f"{self.base_url}/vehicles/{vehicle_id}/positions"
        params: dict[str, Any] = {"from": _iso(start), "to": _iso(end)}
        if max_points is not None:
            params["maxPoints"] = max_points

        if self._client is not None:
            response = await self._client.get(url, params=params, timeout=self.timeout_seconds)
        else:
            async with httpx.AsyncClient() as client:
                response = await client.get(url, params=params, timeout=self.timeout_seconds)
        response.raise_for_status()

        items = _position_items(response.json())
        logger.debug(f"Fetched {len(items)} positions for {vehicle_id}")
        return [RawPositionRecord.from_mapping(item) for item in items if isinstance(item, dict)]


def _position_items(payload: Any) -> list:
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        for key in ("positions", "items", "data"):
            if isinstance(payload.get(key), list):
                return payload[key]
    raise ValueError(f"Unexpected position history payload: {type(payload).__name__}")


def _iso(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")
