"""Redis-backed embedded store.

Entries live in sorted sets scored by epoch seconds, so a range query is a
single ``ZRANGEBYSCORE``. Each member is the entry JSON plus a random id so two
identical submissions do not collapse into one member. Settings are a hash,
which gives upsert-without-delete for free.

Also the persistence layer behind the REST backend (``being_better.server``).
"""

from __future__ import annotations

import json
import logging
from typing import Callable, Optional, TypeVar
from uuid import uuid4

import redis

from being_better.adapters.base import AuthState
from being_better.config.settings import REDIS_KEY_PREFIX, REDIS_URL
from being_better.errors import NotConnectedError, StorageError, ValidationError
from being_better.models.entries import (
    CheckInEntry,
    RatingEntry,
    RatingsRange,
    parse_timestamp,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

SCHEMA_VERSION = "1"


def _get_redis() -> redis.Redis:
    return redis.Redis.from_url(REDIS_URL, decode_responses=True)


class RedisStoreAdapter:
    """Embedded store adapter. Always ``connected`` once ``init()`` succeeds."""

    def __init__(self, r: redis.Redis | None = None, prefix: str = REDIS_KEY_PREFIX):
        self._r = r
        self.prefix = prefix
        self._ready = False
        self._auth_state = AuthState.INITIALIZING

    # ── Keys ─────────────────────────────────────────────────────────────

    @property
    def ratings_key(self) -> str:
        return f"{self.prefix}:ratings"

    @property
    def check_ins_key(self) -> str:
        return f"{self.prefix}:checkins"

    @property
    def settings_key(self) -> str:
        return f"{self.prefix}:settings"

    @property
    def schema_key(self) -> str:
        return f"{self.prefix}:schema"

    # ── Lifecycle ────────────────────────────────────────────────────────

    async def init(self) -> None:
        if self._r is None:
            self._r = _get_redis()
        try:
            self._r.ping()
            self._r.setnx(self.schema_key, SCHEMA_VERSION)
        except redis.RedisError as exc:
            self._ready = False
            self._auth_state = AuthState.NEEDS_LOGIN
            raise StorageError(f"Redis unavailable: {exc}") from exc

        self._ready = True
        self._auth_state = AuthState.CONNECTED
        logger.info("Redis store ready (prefix=%s)", self.prefix)

    def is_ready(self) -> bool:
        return self._ready

    def get_auth_state(self) -> AuthState:
        return self._auth_state

    # ── Entries ──────────────────────────────────────────────────────────

    async def append_rating(self, entry: RatingEntry) -> None:
        self._append(self.ratings_key, entry.timestamp, entry.to_dict())

    async def list_ratings(self, range_: RatingsRange) -> list[RatingEntry]:
        return self._list(self.ratings_key, range_, RatingEntry.from_dict)

    async def append_check_in(self, entry: CheckInEntry) -> None:
        self._append(self.check_ins_key, entry.timestamp, entry.to_dict())

    async def list_check_ins(self, range_: RatingsRange) -> list[CheckInEntry]:
        return self._list(self.check_ins_key, range_, CheckInEntry.from_dict)

    # ── Settings ─────────────────────────────────────────────────────────

    async def save_settings(self, blob: dict[str, str]) -> None:
        r = self._client()
        if not blob:
            return
        try:
            r.hset(self.settings_key, mapping={k: str(v) for k, v in blob.items()})
        except redis.RedisError as exc:
            raise StorageError(f"Failed to save settings: {exc}") from exc

    async def load_settings(self) -> dict[str, str]:
        r = self._client()
        try:
            return dict(r.hgetall(self.settings_key))
        except redis.RedisError as exc:
            raise StorageError(f"Failed to load settings: {exc}") from exc

    # ── Internals ────────────────────────────────────────────────────────

    def _client(self) -> redis.Redis:
        if not self._ready or self._r is None:
            raise NotConnectedError("Adapter not ready")
        return self._r

    def _append(self, key: str, timestamp: str, payload: dict) -> None:
        r = self._client()
        ts = parse_timestamp(timestamp)
        if ts is None:
            raise ValidationError(f"Invalid timestamp: {timestamp!r}")
        member = json.dumps({"id": uuid4().hex, **payload}, sort_keys=True)
        try:
            r.zadd(key, {member: ts.timestamp()})
        except redis.RedisError as exc:
            raise StorageError(f"Failed to append to {key}: {exc}") from exc

    def _list(
        self,
        key: str,
        range_: RatingsRange,
        parse: Callable[[dict], T],
    ) -> list[T]:
        r = self._client()
        start = parse_timestamp(range_.from_iso)
        end = parse_timestamp(range_.to_iso)
        if start is None or end is None:
            raise ValidationError(f"Invalid range: {range_}")
        try:
            members = r.zrangebyscore(key, start.timestamp(), end.timestamp())
        except redis.RedisError as exc:
            raise StorageError(f"Failed to list {key}: {exc}") from exc

        items: list[T] = []
        for raw in members:
            item = _decode_member(raw, parse)
            if item is not None:
                items.append(item)
        return items


def _decode_member(raw: str | bytes, parse: Callable[[dict], T]) -> Optional[T]:
    if isinstance(raw, bytes):
        raw = raw.decode()
    try:
        return parse(json.loads(raw))
    except (json.JSONDecodeError, TypeError, AttributeError, ValidationError) as exc:
        logger.warning("Skipping corrupt stored entry: %s", exc)
        return None
