"""REST adapter talking to the being-better backend (``being_better.server``).

The backend has no per-user auth: a passing health check is all it takes to
be connected.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from being_better.adapters.base import AuthState
from being_better.config.settings import LOCAL_API_BASE_URL, LOCAL_API_TIMEOUT
from being_better.errors import NotConnectedError, StorageError, ValidationError
from being_better.models.entries import CheckInEntry, RatingEntry, RatingsRange

logger = logging.getLogger(__name__)


class RestApiAdapter:
    def __init__(
        self,
        base_url: str = LOCAL_API_BASE_URL,
        timeout: float = LOCAL_API_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self._ready = False
        self._auth_state = AuthState.INITIALIZING

    async def init(self) -> None:
        try:
            resp = await self._request("GET", "/api/health")
        except StorageError:
            self._auth_state = AuthState.NEEDS_LOGIN
            raise
        if resp.status_code != 200:
            self._auth_state = AuthState.NEEDS_LOGIN
            raise StorageError(f"Local API health check failed: {resp.status_code}")

        self._ready = True
        self._auth_state = AuthState.CONNECTED
        logger.info("Connected to local API at %s", self.base_url)

    def is_ready(self) -> bool:
        return self._ready

    def get_auth_state(self) -> AuthState:
        return self._auth_state

    # ── Entries ──────────────────────────────────────────────────────────

    async def append_rating(self, entry: RatingEntry) -> None:
        self._assert_ready()
        resp = await self._request("POST", "/api/ratings", json=entry.to_dict())
        if resp.status_code not in (200, 201):
            raise StorageError(f"Failed to append rating: {resp.status_code}")

    async def list_ratings(self, range_: RatingsRange) -> list[RatingEntry]:
        self._assert_ready()
        items = await self._list("/api/ratings", range_)
        return _parse_items(items, RatingEntry.from_dict)

    async def append_check_in(self, entry: CheckInEntry) -> None:
        self._assert_ready()
        resp = await self._request("POST", "/api/checkins", json=entry.to_dict())
        if resp.status_code not in (200, 201):
            raise StorageError(f"Failed to append check-in: {resp.status_code}")

    async def list_check_ins(self, range_: RatingsRange) -> list[CheckInEntry]:
        self._assert_ready()
        items = await self._list("/api/checkins", range_)
        return _parse_items(items, CheckInEntry.from_dict)

    # ── Settings ─────────────────────────────────────────────────────────

    async def save_settings(self, blob: dict[str, str]) -> None:
        self._assert_ready()
        resp = await self._request("PUT", "/api/settings", json={"settings": blob})
        if resp.status_code != 200:
            raise StorageError(f"Failed to save settings: {resp.status_code}")

    async def load_settings(self) -> dict[str, str]:
        self._assert_ready()
        resp = await self._request("GET", "/api/settings")
        if resp.status_code != 200:
            raise StorageError(f"Failed to load settings: {resp.status_code}")
        settings = resp.json().get("settings") or {}
        return {str(k): str(v) for k, v in settings.items()}

    # ── Internals ────────────────────────────────────────────────────────

    def _assert_ready(self) -> None:
        if not self._ready:
            raise NotConnectedError("Adapter not ready")

    async def _list(self, path: str, range_: RatingsRange) -> list[dict[str, Any]]:
        resp = await self._request(
            "GET", path, params={"from": range_.from_iso, "to": range_.to_iso}
        )
        if resp.status_code != 200:
            raise StorageError(f"Failed to list {path}: {resp.status_code}")
        return resp.json().get("items") or []

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
            ) as client:
                return await client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            raise StorageError(f"{method} {path} failed: {exc}") from exc


def _parse_items(items: list[dict[str, Any]], parse) -> list:
    parsed = []
    for item in items:
        try:
            parsed.append(parse(item))
        except (ValidationError, TypeError, AttributeError) as exc:
            logger.warning("Skipping malformed item from local API: %s", exc)
    return parsed
