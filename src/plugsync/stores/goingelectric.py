"""HTTP client for the GoingElectric chargepoint registry."""

import asyncio
import hashlib
import json
import logging
import random
import time
from collections.abc import Iterable
from typing import Any

import aiohttp

from ..errors import AuthenticationFailure, RegistryError
from ..models import ChargePointMetadata, Location

logger = logging.getLogger(__name__)

GE_API_URL = "https://api.goingelectric.de/chargepoints/"

# Average delay between two registry requests (150ms => ~6.7 requests/s).
DEFAULT_DELAY_MS = 150

# Fields the registry sends as `false` instead of omitting them.
_FALSE_PLACEHOLDER_FIELDS = (
    "fault_report",
    "network",
    "general_information",
    "location_description",
    "ladeweile",
)
_NESTED_FALSE_PLACEHOLDER_FIELDS = {
    "openinghours": ("description",),
    "cost": ("description_long", "description_short"),
}


def cleanup_chargelocation(chargelocation: dict[str, Any]) -> dict[str, Any]:
    """Drop `false` placeholders so they do not leak into records or hashes."""
    cleaned = {
        key: value
        for key, value in chargelocation.items()
        if not (key in _FALSE_PLACEHOLDER_FIELDS and value is False)
    }
    for parent, fields in _NESTED_FALSE_PLACEHOLDER_FIELDS.items():
        nested = cleaned.get(parent)
        if isinstance(nested, dict):
            cleaned[parent] = {
                key: value
                for key, value in nested.items()
                if not (key in fields and value is False)
            }
    return cleaned


def hash_chargelocation(chargelocation: dict[str, Any]) -> str:
    """Stable content hash, independent of key order."""
    canonical = json.dumps(chargelocation, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha1(canonical.encode("utf-8")).hexdigest()


def to_metadata(chargelocation: dict[str, Any]) -> ChargePointMetadata:
    cleaned = cleanup_chargelocation(chargelocation)
    coordinates = cleaned.get("coordinates") or {}
    return ChargePointMetadata(
        external_id=int(cleaned["ge_id"]),
        name=cleaned.get("name") or "",
        location=Location(
            latitude=float(coordinates.get("lat", 0.0)),
            longitude=float(coordinates.get("lng", 0.0)),
        ),
        url=cleaned.get("url") or "",
        hash=hash_chargelocation(cleaned),
        raw=cleaned,
    )


class GoingElectricClient:
    """
    Fetches chargepoint details from the GoingElectric API.

    Requests are throttled so that consecutive calls are at least
    ``delay_ms`` apart (on average, when ``random_delay`` is set).
    """

    def __init__(
        self,
        api_key: str,
        api_url: str | None = None,
        delay_ms: int = DEFAULT_DELAY_MS,
        random_delay: bool = False,
        session: aiohttp.ClientSession | None = None,
        timeout: float = 30.0,
    ):
        self.api_key = api_key
        self.api_url = api_url or GE_API_URL
        self.delay_ms = delay_ms
        self.random_delay = random_delay
        self.timeout = timeout
        self._session = session
        self._owns_session = session is None
        self._last_request_at: float | None = None
        self.request_count = 0
        logger.info(f"GoingElectric client initialized with URL: {self.api_url}")

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self):
        if self._session and self._owns_session:
            await self._session.close()
        self._session = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )
            self._owns_session = True
        return self._session

    async def _throttle(self):
        now = time.monotonic()
        if self.delay_ms and self._last_request_at is not None:
            elapsed_ms = (now - self._last_request_at) * 1000
            if elapsed_ms < self.delay_ms:
                remaining = self.delay_ms - elapsed_ms
                if self.random_delay:
                    remaining = random.random() * remaining * 2.0
                await asyncio.sleep(remaining / 1000)
        self._last_request_at = time.monotonic()

    async def _get_json(self, params: dict[str, Any], endpoint: str = "") -> dict[str, Any]:
        await self._throttle()
        self.request_count += 1

        url = self.api_url + (f"{endpoint}/" if endpoint else "")
        query = {key: str(value) for key, value in params.items() if value is not None}
        query["key"] = self.api_key

        async with self._get_session().get(url, params=query) as response:
            if response.status in (401, 403):
                raise AuthenticationFailure(
                    f"GoingElectric rejected the API key (HTTP {response.status})"
                )
            if response.status >= 400:
                raise RegistryError(f"GoingElectric request failed with HTTP {response.status}")
            return await response.json(content_type=None)

    async def fetch_metadata(self, ge_ids: Iterable[int]) -> list[ChargePointMetadata]:
        """Fetch details for up to 10 chargepoints by GoingElectric id."""
        response = await self._get_json({"ge_id": ",".join(str(ge_id) for ge_id in ge_ids)})

        if response.get("status") != "ok":
            raise RegistryError(f"Got response status: {response.get('status')}")

        return [to_metadata(location) for location in response.get("chargelocations") or []]
