"""FastAPI backend for the REST storage adapter.

REST endpoints for ratings, check-ins and settings, persisted in Redis through
:class:`RedisStoreAdapter`, plus push-subscription endpoints and a background
loop that runs the daily reminder for every subscriber in their own time zone.

Due reminders are published to the ``reminder:events`` Redis channel, where a
push relay picks them up.
"""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Any, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import redis
from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from being_better.adapters.redis_store import RedisStoreAdapter
from being_better.config.settings import (
    DEFAULT_REMINDER_TIME,
    PUSH_VAPID_PUBLIC_KEY,
    REDIS_URL,
    REMINDER_POLL_SECONDS,
)
from being_better.engine.analytics import ALL_TIME_FROM_ISO
from being_better.engine.reminders import (
    RedisChannelNotifier,
    ReminderOutcome,
    ReminderState,
    dispatch_daily_reminder,
)
from being_better.errors import StorageError, ValidationError
from being_better.i18n import translate
from being_better.models.entries import (
    RATING_MAX,
    RATING_MIN,
    CheckInEntry,
    RatingEntry,
    RatingsRange,
    parse_timestamp,
)
from being_better.models.preferences import parse_locale, parse_reminder_time

logger = logging.getLogger(__name__)

app = FastAPI(title="being better", description="Daily ratings, check-ins and reminders")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

PUSH_SUBSCRIPTIONS_KEY = "push:subscriptions"
RANGE_OPEN_END_ISO = "9999-12-31T23:59:59+00:00"


def _get_redis() -> redis.Redis:
    return redis.Redis.from_url(REDIS_URL, decode_responses=True)


async def _get_store() -> RedisStoreAdapter:
    store = RedisStoreAdapter(r=_get_redis())
    try:
        await store.init()
    except StorageError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return store


def _range(from_iso: Optional[str], to_iso: Optional[str]) -> RatingsRange:
    range_ = RatingsRange(from_iso=from_iso or ALL_TIME_FROM_ISO, to_iso=to_iso or RANGE_OPEN_END_ISO)
    if parse_timestamp(range_.from_iso) is None or parse_timestamp(range_.to_iso) is None:
        raise HTTPException(status_code=400, detail="from/to must be ISO-8601 timestamps")
    return range_


# ── Health ───────────────────────────────────────────────────────────────

@app.get("/api/health")
async def health():
    r = _get_redis()
    try:
        r.ping()
    except redis.RedisError as exc:
        logger.warning("Health check: Redis unavailable: %s", exc)
        return JSONResponse(status_code=503, content={"status": "degraded", "redis": False})
    return {"status": "ok", "redis": True}


# ── Ratings ──────────────────────────────────────────────────────────────

class RatingRequest(BaseModel):
    timestamp: str
    rating: int = Field(..., ge=RATING_MIN, le=RATING_MAX)


@app.get("/api/ratings")
async def list_ratings(
    from_iso: Optional[str] = Query(None, alias="from"),
    to_iso: Optional[str] = Query(None, alias="to"),
):
    store = await _get_store()
    items = await store.list_ratings(_range(from_iso, to_iso))
    return {"items": [entry.to_dict() for entry in items]}


@app.post("/api/ratings", status_code=201)
async def create_rating(req: RatingRequest):
    try:
        entry = RatingEntry(timestamp=req.timestamp, rating=req.rating)
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc

    store = await _get_store()
    await store.append_rating(entry)
    return {"item": entry.to_dict()}


# ── Check-ins ────────────────────────────────────────────────────────────

class CheckInRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    timestamp: str
    words: list[str] = []
    intensity: dict[str, Optional[int]] = {}
    context_tags: list[str] = Field(default_factory=list, alias="contextTags")
    suggested_words_used: list[str] = Field(default_factory=list, alias="suggestedWordsUsed")


@app.get("/api/checkins")
async def list_check_ins(
    from_iso: Optional[str] = Query(None, alias="from"),
    to_iso: Optional[str] = Query(None, alias="to"),
):
    store = await _get_store()
    items = await store.list_check_ins(_range(from_iso, to_iso))
    return {"items": [entry.to_dict() for entry in items]}


@app.post("/api/checkins", status_code=201)
async def create_check_in(req: CheckInRequest):
    try:
        entry = CheckInEntry(
            timestamp=req.timestamp,
            words=tuple(req.words),
            intensity=req.intensity,
            context_tags=tuple(req.context_tags),
            suggested_words_used=tuple(req.suggested_words_used),
        )
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc

    store = await _get_store()
    await store.append_check_in(entry)
    return {"item": entry.to_dict()}


# ── Settings ─────────────────────────────────────────────────────────────

class SettingsRequest(BaseModel):
    settings: dict[str, str]


@app.get("/api/settings")
async def get_settings():
    store = await _get_store()
    return {"settings": await store.load_settings()}


@app.put("/api/settings")
async def put_settings(req: SettingsRequest):
    """Upsert the given keys; keys not in the request are left alone."""
    store = await _get_store()
    await store.save_settings(req.settings)
    return {"settings": await store.load_settings()}


# ══════════════════════════════════════════════════════════════════════════
# Push subscriptions + server-side daily reminder
# ══════════════════════════════════════════════════════════════════════════

class SubscriptionModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    endpoint: str = Field(..., min_length=1)
    keys: dict[str, str] = {}
    time_zone: str = Field("UTC", alias="timeZone")


class SubscribeRequest(BaseModel):
    subscription: SubscriptionModel


class PushSettingsRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    endpoint: str
    reminder_enabled: bool = Field(False, alias="reminderEnabled")
    reminder_time: str = Field(DEFAULT_REMINDER_TIME, alias="reminderTime")
    locale: str = "en"


def _zone(name: str) -> Optional[ZoneInfo]:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return None


def _load_subscription(r: redis.Redis, endpoint: str) -> Optional[dict[str, Any]]:
    raw = r.hget(PUSH_SUBSCRIPTIONS_KEY, endpoint)
    if not raw:
        return None
    try:
        record = json.loads(raw)
    except json.JSONDecodeError:
        return None
    return record if isinstance(record, dict) else None


@app.get("/api/push/public-key")
async def push_public_key():
    if not PUSH_VAPID_PUBLIC_KEY:
        raise HTTPException(status_code=404, detail="Push is not configured")
    return {"publicKey": PUSH_VAPID_PUBLIC_KEY}


@app.post("/api/push/subscribe", status_code=201)
async def push_subscribe(req: SubscribeRequest):
    """Store a subscription. Re-subscribing keeps its reminder settings."""
    sub = req.subscription
    if _zone(sub.time_zone) is None:
        raise HTTPException(status_code=422, detail=f"Unknown time zone: {sub.time_zone}")

    r = _get_redis()
    record = _load_subscription(r, sub.endpoint) or {
        "reminder_enabled": False,
        "reminder_time": DEFAULT_REMINDER_TIME,
        "locale": "en",
        "last_sent_date_key": None,
    }
    record.update({
        "endpoint": sub.endpoint,
        "keys": sub.keys,
        "time_zone": sub.time_zone,
        "subscribed_at": datetime.now(timezone.utc).isoformat(),
    })
    r.hset(PUSH_SUBSCRIPTIONS_KEY, sub.endpoint, json.dumps(record))
    logger.info("Push subscription stored for %s", sub.endpoint)
    return {"status": "subscribed", "endpoint": sub.endpoint}


@app.post("/api/push/settings")
async def push_settings(req: PushSettingsRequest):
    reminder_time = parse_reminder_time(req.reminder_time)
    if reminder_time is None:
        raise HTTPException(status_code=422, detail="reminderTime must be HH:MM")

    r = _get_redis()
    record = _load_subscription(r, req.endpoint)
    if record is None:
        raise HTTPException(status_code=404, detail="Unknown subscription")

    record["reminder_enabled"] = req.reminder_enabled
    record["reminder_time"] = reminder_time
    record["locale"] = parse_locale(req.locale) or "en"
    r.hset(PUSH_SUBSCRIPTIONS_KEY, req.endpoint, json.dumps(record))
    return {
        "status": "updated",
        "reminderEnabled": record["reminder_enabled"],
        "reminderTime": record["reminder_time"],
        "locale": record["locale"],
    }


def run_push_reminders(r: redis.Redis, now: datetime) -> int:
    """One pass over every subscription. Returns how many reminders were published."""
    published = 0
    for endpoint in r.hkeys(PUSH_SUBSCRIPTIONS_KEY):
        record = _load_subscription(r, endpoint)
        if record is None:
            logger.warning("Skipping corrupt push subscription %s", endpoint)
            continue
        try:
            if _remind_subscriber(r, endpoint, record, now):
                published += 1
        except (AttributeError, TypeError, ValueError) as exc:
            logger.warning("Skipping malformed push subscription %s: %s", endpoint, exc)
    return published


def _remind_subscriber(r: redis.Redis, endpoint: str, record: dict[str, Any], now: datetime) -> bool:
    zone = _zone(record.get("time_zone") or "UTC") or timezone.utc
    locale = record.get("locale") or "en"
    state = ReminderState(
        enabled=bool(record.get("reminder_enabled")),
        time=record.get("reminder_time") or DEFAULT_REMINDER_TIME,
        last_sent_date_key=record.get("last_sent_date_key"),
    )
    state, outcome = dispatch_daily_reminder(
        state,
        now.astimezone(zone),
        RedisChannelNotifier(r, target=endpoint),
        translate("reminder.notificationTitle", locale),
        translate("reminder.notificationBody", locale),
    )
    if outcome is ReminderOutcome.NOT_DUE:
        return False

    record["last_sent_date_key"] = state.last_sent_date_key
    r.hset(PUSH_SUBSCRIPTIONS_KEY, endpoint, json.dumps(record))
    return True


_reminder_task: Optional[asyncio.Task] = None


async def _push_reminder_loop():
    """Background task: run the reminder pass every REMINDER_POLL_SECONDS."""
    logger.info("Push reminder loop started (every %ss)", REMINDER_POLL_SECONDS)
    while True:
        try:
            published = run_push_reminders(_get_redis(), datetime.now(timezone.utc))
            if published:
                logger.info("Published %d push reminders", published)
        except redis.RedisError as exc:
            logger.error("Push reminder pass failed: %s", exc)
        except Exception:
            logger.exception("Unexpected error in push reminder pass")
        await asyncio.sleep(REMINDER_POLL_SECONDS)


@app.on_event("startup")
async def start_reminder_loop():
    global _reminder_task
    _reminder_task = asyncio.create_task(_push_reminder_loop())


@app.on_event("shutdown")
async def stop_reminder_loop():
    if _reminder_task and not _reminder_task.done():
        _reminder_task.cancel()
        try:
            await _reminder_task
        except asyncio.CancelledError:
            pass
