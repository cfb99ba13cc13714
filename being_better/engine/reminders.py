"""Daily reminder scheduling.

A pure decision function plus a per-day marker: the caller polls
``should_send_daily_reminder`` on a timer and records a fire with
``mark_reminder_sent``, which caps delivery at one per local calendar day no
matter how often the check runs. Nothing in here sleeps or reads the clock.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Optional, Protocol, runtime_checkable

import redis

from being_better.config.settings import DEFAULT_REMINDER_TIME
from being_better.models.preferences import parse_reminder_time

logger = logging.getLogger(__name__)

REMINDER_CHANNEL = "reminder:events"

PERMISSION_DEFAULT = "default"
PERMISSION_GRANTED = "granted"
PERMISSION_DENIED = "denied"
PERMISSION_UNSUPPORTED = "unsupported"


class ReminderOutcome(str, Enum):
    NOT_DUE = "not_due"
    SENT = "sent"                            # notification fired
    DUE = "due"                              # no notification support, show in-app
    PERMISSION_NEEDED = "permission_needed"  # default/denied permission


@dataclass(frozen=True)
class ReminderState:
    enabled: bool = False
    time: str = DEFAULT_REMINDER_TIME  # HH:MM
    last_sent_date_key: Optional[str] = None


def reminder_date_key(now: datetime) -> str:
    """Local calendar day of ``now`` (``YYYY-MM-DD``)."""
    return now.strftime("%Y-%m-%d")


def _minutes(hhmm: str) -> int:
    hours, minutes = hhmm.split(":")
    return int(hours) * 60 + int(minutes)


def should_send_daily_reminder(state: ReminderState, now: datetime) -> bool:
    if not state.enabled:
        return False
    reminder_time = parse_reminder_time(state.time) or DEFAULT_REMINDER_TIME
    if now.hour * 60 + now.minute < _minutes(reminder_time):
        return False
    return state.last_sent_date_key != reminder_date_key(now)


def mark_reminder_sent(state: ReminderState, now: datetime) -> ReminderState:
    return replace(state, last_sent_date_key=reminder_date_key(now))


# ── Delivery ─────────────────────────────────────────────────────────────


@runtime_checkable
class Notifier(Protocol):
    """Notification capability of the environment the app runs in."""

    def permission(self) -> str: ...

    async def request_permission(self) -> str: ...

    def notify(self, title: str, body: str) -> None: ...


def dispatch_daily_reminder(
    state: ReminderState,
    now: datetime,
    notifier: Notifier,
    title: str,
    body: str,
) -> tuple[ReminderState, ReminderOutcome]:
    """Fire today's reminder if due and return the updated state.

    The day is marked as sent before delivery, whatever the permission,
    so a user without notification permission is prompted once per day
    rather than on every poll.
    """
    if not should_send_daily_reminder(state, now):
        return state, ReminderOutcome.NOT_DUE

    state = mark_reminder_sent(state, now)
    permission = notifier.permission()

    if permission == PERMISSION_GRANTED:
        notifier.notify(title, body)
        return state, ReminderOutcome.SENT
    if permission == PERMISSION_UNSUPPORTED:
        return state, ReminderOutcome.DUE
    return state, ReminderOutcome.PERMISSION_NEEDED


class RedisChannelNotifier:
    """Publishes reminders to ``reminder:events`` for push/WebSocket relays."""

    def __init__(self, r: redis.Redis, target: str = ""):
        self.r = r
        self.target = target

    def permission(self) -> str:
        return PERMISSION_GRANTED

    async def request_permission(self) -> str:
        return PERMISSION_GRANTED

    def notify(self, title: str, body: str) -> None:
        self.r.publish(REMINDER_CHANNEL, json.dumps({
            "event": "reminder",
            "target": self.target,
            "notification": {"title": title, "body": body},
        }))
        logger.info("Published reminder for %s", self.target or "local user")


class UnsupportedNotifier:
    """Environment with no system notifications: due reminders surface in-app."""

    def permission(self) -> str:
        return PERMISSION_UNSUPPORTED

    async def request_permission(self) -> str:
        return PERMISSION_UNSUPPORTED

    def notify(self, title: str, body: str) -> None:
        logger.debug("Dropping notification %r: notifications unsupported", title)
