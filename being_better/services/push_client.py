"""Push subscription client for the being-better REST backend.

The backend keeps one record per subscription endpoint and runs the daily
reminder for it server-side, in the subscriber's time zone, so reminders
still fire when no client is open.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx

from being_better.config.settings import LOCAL_API_TIMEOUT
from being_better.errors import PushError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PushSubscription:
    endpoint: str
    keys: dict[str, str] = field(default_factory=dict)  # p256dh, auth
    time_zone: str = "UTC"

    def to_dict(self) -> dict[str, Any]:
        return {"endpoint": self.endpoint, "keys": dict(self.keys), "timeZone": self.time_zone}


async def _request(
    base_url: str,
    method: str,
    path: str,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    **kwargs,
) -> dict[str, Any]:
    try:
        async with httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=LOCAL_API_TIMEOUT,
            transport=transport,
        ) as client:
            resp = await client.request(method, path, **kwargs)
    except httpx.HTTPError as exc:
        raise PushError(f"{method} {path} failed: {exc}") from exc

    if resp.status_code not in (200, 201):
        raise PushError(f"{method} {path} returned {resp.status_code}")
    return resp.json()


async def fetch_public_key(
    base_url: str,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> str:
    """Application server key the push service needs to create a subscription."""
    data = await _request(base_url, "GET", "/api/push/public-key", transport)
    key = data.get("publicKey")
    if not key:
        raise PushError("Push is not configured on the server")
    return key


async def ensure_push_subscription(
    base_url: str,
    subscription: PushSubscription,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> PushSubscription:
    """Register ``subscription`` with the backend. Re-registering is harmless.

    Raises :class:`PushError` up front when the server has no VAPID key, since
    it could never deliver to the subscription.
    """
    await fetch_public_key(base_url, transport)  # push configured check
    await _request(
        base_url, "POST", "/api/push/subscribe", transport,
        json={"subscription": subscription.to_dict()},
    )
    logger.info("Push subscription registered: %s", subscription.endpoint)
    return subscription


async def sync_push_reminder_settings(
    base_url: str,
    subscription: PushSubscription,
    settings: dict[str, Any],
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> None:
    """Send ``{reminderEnabled, reminderTime, locale}`` for one subscription."""
    await _request(
        base_url, "POST", "/api/push/settings", transport,
        json={
            "endpoint": subscription.endpoint,
            "reminderEnabled": bool(settings.get("reminderEnabled")),
            "reminderTime": settings.get("reminderTime"),
            "locale": settings.get("locale"),
        },
    )
