"""Application controller.

Owns the explicit :class:`AppState` and every user-facing operation: picking
a backend and booting its adapter, sign-in, submitting entries, refreshing
charts, changing preferences and polling the daily reminder.

Boot is guarded by a generation counter: each ``boot()`` bumps it, and a boot
whose generation (or selected backend, or adapter) changed while it awaited
drops its results instead of applying them over a newer boot.

No operation raises to the caller. Failures are logged and become a
:class:`StatusMessage` on ``state.status``.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Mapping, Optional

import httpx

from being_better.adapters.base import AuthState, SettingsCapable, SignInCapable, StoreAdapter
from being_better.adapters.factory import (
    BACKEND_GOOGLE,
    BACKEND_LOCAL_API,
    BACKEND_REDIS,
    create_adapter,
    resolve_data_backend,
)
from being_better.config.settings import (
    DATA_BACKEND,
    DEFAULT_REMINDER_TIME,
    PUSH_API_BASE_URL,
    REMINDER_POLL_SECONDS,
)
from being_better.engine.analytics import (
    CLOUD_WINDOWS,
    CheckInInsights,
    RatingPoint,
    WordScore,
    build_check_in_insights,
    build_last_week_series,
    build_word_cloud,
    get_word_cloud_window_range,
)
from being_better.engine.reminders import (
    PERMISSION_DEFAULT,
    PERMISSION_GRANTED,
    PERMISSION_UNSUPPORTED,
    Notifier,
    ReminderOutcome,
    ReminderState,
    UnsupportedNotifier,
    dispatch_daily_reminder,
    mark_reminder_sent,
)
from being_better.errors import MissingGoogleClientIdError, PushError, SignInInProgressError
from being_better.i18n import translate
from being_better.models.entries import (
    CheckInEntry,
    RatingEntry,
    normalize_tag,
    parse_intensity_input,
    parse_rating_input,
    split_words,
)
from being_better.models.preferences import (
    Preferences,
    PreferencesStore,
    next_theme_preference,
    parse_locale,
    parse_reminder_time,
    parse_theme_preference,
)
from being_better.services.push_client import (
    PushSubscription,
    ensure_push_subscription,
    sync_push_reminder_settings,
)

logger = logging.getLogger(__name__)

PERSONAL_SUGGESTION_COUNT = 6

REMINDER_STATUS = {
    ReminderOutcome.SENT: ("status.reminderSent", False),
    ReminderOutcome.DUE: ("status.reminderDue", False),
    ReminderOutcome.PERMISSION_NEEDED: ("status.reminderPermissionNeeded", True),
}


@dataclass
class StatusMessage:
    key: str
    text: str
    is_error: bool = False


@dataclass
class AppState:
    backend: str = BACKEND_GOOGLE
    auth_state: AuthState = AuthState.INITIALIZING
    is_ready: bool = False
    sign_in_enabled: bool = False
    status: Optional[StatusMessage] = None
    week_series: list[RatingPoint] = field(default_factory=list)
    cloud_window: str = "week"
    word_cloud: list[WordScore] = field(default_factory=list)
    insights: Optional[CheckInInsights] = None
    personal_suggestions: list[str] = field(default_factory=list)
    notification_permission: str = PERMISSION_DEFAULT


def resolve_init_failure_status(backend: str, error: BaseException) -> str:
    """Status key for an adapter whose ``init()`` raised."""
    if isinstance(error, MissingGoogleClientIdError):
        return "status.missingClientId"
    if backend == BACKEND_LOCAL_API:
        return "status.localApiUnavailable"
    if backend == BACKEND_REDIS:
        return "status.embeddedStoreUnavailable"
    return "status.googleClientInitFailed"


def _local_now() -> datetime:
    return datetime.now().astimezone()


class AppController:
    def __init__(
        self,
        preferences_store: PreferencesStore | None = None,
        adapter_factory: Callable[[str], StoreAdapter] = create_adapter,
        notifier: Notifier | None = None,
        push_base_url: str = PUSH_API_BASE_URL,
        push_subscription: PushSubscription | None = None,
        push_transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.preferences_store = preferences_store or PreferencesStore()
        self.preferences: Preferences = self.preferences_store.load()
        self.adapter_factory = adapter_factory
        self.notifier = notifier or UnsupportedNotifier()
        self.push_base_url = push_base_url
        self.push_subscription = push_subscription
        self._push_transport = push_transport

        self.adapter: Optional[StoreAdapter] = None
        self.state = AppState(
            backend=resolve_data_backend(self.preferences.storage_backend or DATA_BACKEND),
            notification_permission=self.notifier.permission(),
        )
        self.status_history: list[StatusMessage] = []
        self._generation = 0
        self._applying_remote_settings = False

    # ── Status ───────────────────────────────────────────────────────────

    def t(self, key: str, **variables: str) -> str:
        return translate(key, self.preferences.locale, **variables)

    def _set_status(self, key: str, is_error: bool = False, **variables: str) -> StatusMessage:
        message = StatusMessage(key=key, text=self.t(key, **variables), is_error=is_error)
        self.state.status = message
        self.status_history.append(message)
        return message

    # ── Backend lifecycle ────────────────────────────────────────────────

    async def select_backend(self, name: str) -> None:
        backend = resolve_data_backend(name)
        self.state.backend = backend
        self.preferences.storage_backend = backend
        self._save_preferences()
        await self.boot()

    async def boot(self) -> None:
        self._generation += 1
        generation = self._generation
        backend = self.state.backend
        adapter = self.adapter_factory(backend)
        self.adapter = adapter

        self.state.auth_state = AuthState.INITIALIZING
        self.state.is_ready = False
        self.state.sign_in_enabled = False
        self._set_status("status.waitingForLogin")

        def is_stale() -> bool:
            return (
                generation != self._generation
                or self.state.backend != backend
                or self.adapter is not adapter
            )

        try:
            await adapter.init()
        except Exception as exc:
            if is_stale():
                return
            logger.warning("Backend %s failed to initialize: %s", backend, exc)
            self.state.auth_state = adapter.get_auth_state()
            self._set_status(resolve_init_failure_status(backend, exc), is_error=True)
            return

        if is_stale():
            logger.info("Discarding stale boot of %s (generation %d)", backend, generation)
            return

        self.state.auth_state = adapter.get_auth_state()
        if self.state.auth_state != AuthState.CONNECTED:
            self.state.sign_in_enabled = isinstance(adapter, SignInCapable)
            self._set_status("status.clickSignIn", signIn=self.t("auth.signIn"))
            return

        await self._hydrate_settings(adapter, is_stale)
        if is_stale():
            return
        await self._persist_settings(adapter)
        if is_stale():
            return

        self._set_connected()
        self._set_status("status.sessionRestored" if backend == BACKEND_GOOGLE else "status.connected")

    async def sign_in(self) -> None:
        adapter = self.adapter
        if not isinstance(adapter, SignInCapable):
            return
        generation = self._generation

        self._set_status("status.openingGoogleLogin")
        try:
            await adapter.request_sign_in()
        except SignInInProgressError:
            logger.info("Sign in already in progress, ignoring second request")
            return
        except Exception as exc:
            logger.warning("Sign in failed: %s", exc)
            if generation == self._generation:
                self.state.auth_state = adapter.get_auth_state()
                self._set_status("status.authRejected", is_error=True)
            return

        def is_stale() -> bool:
            return generation != self._generation or self.adapter is not adapter

        if is_stale():
            return
        await self._hydrate_settings(adapter, is_stale)
        if is_stale():
            return
        await self._persist_settings(adapter)
        if is_stale():
            return
        self._set_connected()
        self._set_status("status.connected")

    def _set_connected(self) -> None:
        self.state.auth_state = AuthState.CONNECTED
        self.state.is_ready = True
        self.state.sign_in_enabled = False

    def _ready_adapter(self) -> Optional[StoreAdapter]:
        adapter = self.adapter
        if adapter is None or not adapter.is_ready():
            return None
        return adapter

    # ── Entries ──────────────────────────────────────────────────────────

    async def submit_rating(self, raw: str, now: datetime | None = None) -> Optional[RatingEntry]:
        adapter = self._ready_adapter()
        if adapter is None:
            self._set_status("status.signInFirst", is_error=True)
            return None

        rating = parse_rating_input(raw)
        if rating is None:
            self._set_status("status.invalidRating", is_error=True)
            return None

        now = now or _local_now()
        entry = RatingEntry(timestamp=now.astimezone(timezone.utc).isoformat(), rating=rating)
        try:
            await adapter.append_rating(entry)
        except Exception as exc:
            logger.error("Failed to save rating: %s", exc)
            self._set_status("status.ratingSaveFailed", is_error=True)
            return None

        self._set_status("status.ratingSaved")
        return entry

    async def submit_check_in(
        self,
        words: str,
        intensity: Mapping[str, Any] | None = None,
        context_tags: Iterable[str] = (),
        suggested_words_used: Iterable[str] = (),
        now: datetime | None = None,
    ) -> Optional[CheckInEntry]:
        adapter = self._ready_adapter()
        if adapter is None:
            self._set_status("status.signInFirst", is_error=True)
            return None

        word_list = split_words(words)
        if not word_list:
            self._set_status("status.wordsRequired", is_error=True)
            return None

        now = now or _local_now()
        try:
            entry = CheckInEntry(
                timestamp=now.astimezone(timezone.utc).isoformat(),
                words=tuple(word_list),
                intensity={
                    axis: parse_intensity_input(value) if isinstance(value, str) else value
                    for axis, value in (intensity or {}).items()
                },
                context_tags=tuple(tag for tag in map(normalize_tag, context_tags) if tag),
                suggested_words_used=tuple(suggested_words_used),
            )
            await adapter.append_check_in(entry)
        except Exception as exc:
            logger.error("Failed to save check-in: %s", exc)
            self._set_status("status.checkInSaveFailed", is_error=True)
            return None

        self._set_status("status.checkInSaved")
        return entry

    # ── Charts ───────────────────────────────────────────────────────────

    async def refresh_week_chart(self, now: datetime | None = None) -> None:
        adapter = self._ready_adapter()
        if adapter is None:
            return
        now = now or _local_now()
        try:
            rows = await adapter.list_ratings(get_word_cloud_window_range("week", now))
        except Exception as exc:
            logger.error("Failed to load ratings: %s", exc)
            self._set_status("status.chartLoadFailed", is_error=True)
            return
        self.state.week_series = build_last_week_series(rows, now, self.preferences.locale)
        self._set_status("status.chartUpdated")

    async def refresh_word_cloud(self, now: datetime | None = None, window: str | None = None) -> None:
        if window in CLOUD_WINDOWS:
            self.state.cloud_window = window
        adapter = self._ready_adapter()
        if adapter is None:
            return
        now = now or _local_now()
        try:
            rows = await adapter.list_check_ins(get_word_cloud_window_range(self.state.cloud_window, now))
        except Exception as exc:
            logger.error("Failed to load check-ins: %s", exc)
            self._set_status("status.cloudLoadFailed", is_error=True)
            return
        self.state.word_cloud = build_word_cloud(rows, self.preferences.locale)
        self.state.insights = build_check_in_insights(rows, now, self.preferences.locale)

    async def refresh_personal_suggestions(self, now: datetime | None = None) -> None:
        """Top all-time words, offered as one-tap suggestions on the entry form."""
        adapter = self._ready_adapter()
        if adapter is None:
            return
        now = now or _local_now()
        try:
            rows = await adapter.list_check_ins(get_word_cloud_window_range("all-time", now))
        except Exception as exc:
            logger.warning("Failed to load personal suggestions: %s", exc)
            self.state.personal_suggestions = []
            return
        cloud = build_word_cloud(rows, self.preferences.locale)
        self.state.personal_suggestions = [item.word for item in cloud[:PERSONAL_SUGGESTION_COUNT]]

    # ── Preferences ──────────────────────────────────────────────────────

    async def set_locale(self, raw: str) -> None:
        locale = parse_locale(raw) or "en"
        if locale == self.preferences.locale:
            return
        self.preferences.locale = locale
        self._save_preferences()
        await self._persist_settings()
        await self._sync_push_settings()

    async def set_theme_preference(self, raw: str) -> None:
        self.preferences.theme_preference = parse_theme_preference(raw) or "system"
        self._save_preferences()
        await self._persist_settings()

    async def cycle_theme_preference(self) -> str:
        await self.set_theme_preference(next_theme_preference(self.preferences.theme_preference))
        return self.preferences.theme_preference

    async def set_reminder_settings(self, enabled: bool, time: str) -> None:
        self.preferences.reminder_enabled = enabled
        self.preferences.reminder_time = parse_reminder_time(time) or DEFAULT_REMINDER_TIME
        self._save_preferences()
        await self._sync_push_settings()
        await self._persist_settings()

    def _save_preferences(self) -> None:
        try:
            self.preferences_store.save(self.preferences)
        except OSError as exc:
            logger.error("Failed to write preferences: %s", exc)

    async def _persist_settings(self, adapter: StoreAdapter | None = None) -> None:
        adapter = adapter or self.adapter
        if (
            self._applying_remote_settings
            or not isinstance(adapter, SettingsCapable)
            or not adapter.is_ready()
        ):
            return
        try:
            await adapter.save_settings(self.preferences.to_settings_blob(self.state.backend))
        except Exception as exc:
            logger.warning("Failed to mirror settings to %s: %s", self.state.backend, exc)

    async def _hydrate_settings(self, adapter: StoreAdapter, is_stale: Callable[[], bool]) -> None:
        if not isinstance(adapter, SettingsCapable):
            return
        try:
            blob = await adapter.load_settings()
            if is_stale():
                return
            self._applying_remote_settings = True
            reminder_before = (self.preferences.reminder_enabled, self.preferences.reminder_time)
            if self.preferences.apply_settings_blob(blob):
                self._save_preferences()
            if (self.preferences.reminder_enabled, self.preferences.reminder_time) != reminder_before:
                await self._sync_push_settings()
        except Exception as exc:
            logger.warning("Failed to load settings from %s: %s", self.state.backend, exc)
        finally:
            self._applying_remote_settings = False

    # ── Reminders ────────────────────────────────────────────────────────

    def maybe_send_reminder(self, now: datetime | None = None) -> ReminderOutcome:
        now = now or _local_now()
        state = ReminderState(
            enabled=self.preferences.reminder_enabled,
            time=self.preferences.reminder_time,
            last_sent_date_key=self.preferences.reminder_last_sent_date_key,
        )
        try:
            state, outcome = dispatch_daily_reminder(
                state,
                now,
                self.notifier,
                self.t("reminder.notificationTitle"),
                self.t("reminder.notificationBody"),
            )
        except Exception as exc:
            logger.error("Reminder notification failed: %s", exc)
            state, outcome = mark_reminder_sent(state, now), ReminderOutcome.DUE

        if outcome is ReminderOutcome.NOT_DUE:
            return outcome

        self.preferences.reminder_last_sent_date_key = state.last_sent_date_key
        self._save_preferences()
        self.state.notification_permission = self.notifier.permission()
        key, is_error = REMINDER_STATUS[outcome]
        self._set_status(key, is_error=is_error)
        return outcome

    async def run_reminder_loop(self, poll_seconds: float = REMINDER_POLL_SECONDS) -> None:
        """Poll the reminder until cancelled."""
        while True:
            self.maybe_send_reminder()
            await asyncio.sleep(poll_seconds)

    async def request_notification_permission(self) -> str:
        permission = await self.notifier.request_permission()
        self.state.notification_permission = permission

        if permission == PERMISSION_UNSUPPORTED:
            self._set_status("status.reminderNotificationsUnsupported", is_error=True)
            return permission
        if permission != PERMISSION_GRANTED:
            self._set_status("status.reminderPermissionDenied", is_error=True)
            return permission

        if self.push_base_url and self.push_subscription is not None:
            try:
                await ensure_push_subscription(
                    self.push_base_url, self.push_subscription, self._push_transport
                )
                await sync_push_reminder_settings(
                    self.push_base_url, self.push_subscription, self._push_settings(),
                    self._push_transport,
                )
            except PushError as exc:
                logger.error("Push setup failed: %s", exc)
                self._set_status("status.pushSetupFailed", is_error=True)
                return permission

        self._set_status("status.reminderPermissionGranted")
        self.maybe_send_reminder()
        return permission

    def _push_settings(self) -> dict[str, Any]:
        return {
            "reminderEnabled": self.preferences.reminder_enabled,
            "reminderTime": self.preferences.reminder_time,
            "locale": self.preferences.locale,
        }

    async def _sync_push_settings(self) -> None:
        if not self.push_base_url or self.push_subscription is None:
            return
        try:
            await sync_push_reminder_settings(
                self.push_base_url, self.push_subscription, self._push_settings(),
                self._push_transport,
            )
        except PushError as exc:
            logger.error("Push settings sync failed: %s", exc)
            self._set_status("status.pushSyncFailed", is_error=True)
