"""HTTP client for the chargEV DB event API."""

import logging
from typing import Any, Optional

import aiohttp

from ..errors import AuthenticationFailure, SourceStoreError
from ..models import ChargeEvent, ChargeEventSource
from ..pagination import Batch, FetchPage
from ..transform import parse_event

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0


class ChargevDBClient:
    """
    Client for the chargEV DB events endpoint.

    Events are paged with the ``change-token`` of the sync (where to resume)
    and the ``start-token`` handed out with each page (where the next page
    starts). Payloads are returned raw so that the caller can handle parse
    errors one event at a time.
    """

    def __init__(
        self,
        url: str,
        jwt_token: str,
        session: aiohttp.ClientSession | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.url = url.rstrip("/")
        self.jwt_token = jwt_token
        self.timeout = timeout
        self._session = session
        self._owns_session = session is None
        self.request_count = 0

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

    async def _request(
        self,
        method: str,
        endpoint: str,
        params: dict[str, Any] | None = None,
        payload: Any = None,
    ) -> dict[str, Any]:
        """Perform an API call and return the decoded JSON body."""
        query = {key: str(value) for key, value in (params or {}).items() if value is not None}
        self.request_count += 1

        async with self._get_session().request(
            method,
            f"{self.url}/{endpoint}",
            params=query,
            json=payload,
            headers={"Authorization": f"Bearer {self.jwt_token}"},
        ) as response:
            if response.status in (401, 403):
                raise AuthenticationFailure(
                    f"chargEV DB rejected credentials (HTTP {response.status})"
                )
            if response.status >= 400:
                body = await response.text()
                raise SourceStoreError(
                    f"chargEV DB {method} /{endpoint} failed with HTTP {response.status}: {body[:200]}"
                )
            data = await response.json(content_type=None)

        if isinstance(data, dict) and data.get("success") is False:
            raise SourceStoreError(f"chargEV DB {method} /{endpoint} reported failure: {data}")
        return data

    async def list_events(
        self,
        change_token: str | None,
        start_token: str | None = None,
        limit: int | None = None,
    ) -> Batch[dict[str, Any]]:
        """Fetch a single page of raw event payloads."""
        response = await self._request(
            "GET",
            "events",
            {"change-token": change_token, "start-token": start_token, "limit": limit},
        )
        next_token = response.get("startToken")
        return Batch(
            items=list(response.get("events") or []),
            more_coming=bool(response.get("moreComing")),
            next_cursor=str(next_token) if next_token is not None else None,
        )

    def pages(self, change_token: str | None) -> FetchPage:
        """Page fetcher for a CursorReader, resuming at ``change_token``."""

        async def fetch_page(start_token: Optional[str], remaining: Optional[int]) -> Batch:
            return await self.list_events(change_token, start_token, remaining)

        return fetch_page

    async def get_latest_event(
        self, source: ChargeEventSource = ChargeEventSource.TARGET_STORE_NATIVE
    ) -> ChargeEvent | None:
        """Most recently updated event of ``source``, or None if there is none."""
        response = await self._request("GET", "events/latest", {"source": int(source)})
        payload = response.get("event")
        return parse_event(payload) if payload else None

    async def post_events(
        self, to_save: list[dict[str, Any]], to_delete: list[str]
    ) -> dict[str, Any]:
        """Save and delete events in one request."""
        response = await self._request(
            "POST", "events", payload={"save": to_save, "delete": to_delete}
        )
        return {
            "saved": response.get("saved", []),
            "deletedCount": int(response.get("deletedCount", 0)),
        }

    async def delete_all(
        self, source: ChargeEventSource = ChargeEventSource.TARGET_STORE_NATIVE
    ) -> int:
        """Delete every event of ``source``; returns the number deleted."""
        response = await self._request("DELETE", "events", {"source": int(source)})
        return int(response.get("deletedCount", 0))
