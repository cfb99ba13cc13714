"""User preferences: the settings blob keys and the local preferences file.

The settings blob is the adapter-agnostic ``dict[str, str]`` mirrored through
an adapter's settings channel. The local file keeps the same preferences plus
the reminder marker, and is written regardless of which backend is active.
"""

from __future__ import annotations

import json
import logging
import os
import re
import tempfile
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Optional

from being_better.config.settings import DATA_DIR, DEFAULT_REMINDER_TIME, PREFERENCES_FILE

logger = logging.getLogger(__name__)

SETTINGS_KEY_LOCALE = "locale"
SETTINGS_KEY_THEME_PREFERENCE = "theme_preference"
SETTINGS_KEY_REMINDER_ENABLED = "reminder_enabled"
SETTINGS_KEY_REMINDER_TIME = "reminder_time"
SETTINGS_KEY_STORAGE_BACKEND = "storage_backend"

SUPPORTED_LOCALES: tuple[str, ...] = ("pl", "en")
THEME_PREFERENCES: tuple[str, ...] = ("light", "dark", "system")

_REMINDER_TIME = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


def parse_locale(raw: str) -> Optional[str]:
    value = (raw or "").strip().lower()
    return value if value in SUPPORTED_LOCALES else None


def parse_theme_preference(raw: str) -> Optional[str]:
    value = (raw or "").strip().lower()
    return value if value in THEME_PREFERENCES else None


def next_theme_preference(preference: str) -> str:
    """Cycle light → dark → system → light."""
    if preference == "light":
        return "dark"
    if preference == "dark":
        return "system"
    return "light"


def parse_boolean_setting(raw: Optional[str]) -> Optional[bool]:
    if raw == "1":
        return True
    if raw == "0":
        return False
    return None


def parse_reminder_time(raw: str) -> Optional[str]:
    """Validate an ``HH:MM`` reminder time (24h)."""
    value = (raw or "").strip()
    return value if _REMINDER_TIME.match(value) else None


# ── Local preferences file ───────────────────────────────────────────────


@dataclass
class Preferences:
    locale: str = "en"
    theme_preference: str = "system"
    reminder_enabled: bool = False
    reminder_time: str = DEFAULT_REMINDER_TIME
    reminder_last_sent_date_key: Optional[str] = None
    storage_backend: Optional[str] = None

    def to_settings_blob(self, storage_backend: Optional[str] = None) -> dict[str, str]:
        """Settings mirrored through an adapter (booleans as "0"/"1")."""
        return {
            SETTINGS_KEY_LOCALE: self.locale,
            SETTINGS_KEY_THEME_PREFERENCE: self.theme_preference,
            SETTINGS_KEY_REMINDER_ENABLED: "1" if self.reminder_enabled else "0",
            SETTINGS_KEY_REMINDER_TIME: self.reminder_time,
            SETTINGS_KEY_STORAGE_BACKEND: storage_backend or self.storage_backend or "google",
        }

    def apply_settings_blob(self, blob: dict[str, str]) -> bool:
        """Merge valid values from a remote blob. Returns True if anything changed."""
        before = asdict(self)

        locale = parse_locale(blob.get(SETTINGS_KEY_LOCALE, ""))
        if locale:
            self.locale = locale
        theme = parse_theme_preference(blob.get(SETTINGS_KEY_THEME_PREFERENCE, ""))
        if theme:
            self.theme_preference = theme
        enabled = parse_boolean_setting(blob.get(SETTINGS_KEY_REMINDER_ENABLED))
        if enabled is not None:
            self.reminder_enabled = enabled
        reminder_time = parse_reminder_time(blob.get(SETTINGS_KEY_REMINDER_TIME, ""))
        if reminder_time:
            self.reminder_time = reminder_time

        return asdict(self) != before

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Preferences:
        prefs = cls()
        prefs.locale = parse_locale(data.get("locale", "")) or prefs.locale
        prefs.theme_preference = (
            parse_theme_preference(data.get("theme_preference", "")) or prefs.theme_preference
        )
        prefs.reminder_enabled = bool(data.get("reminder_enabled", False))
        prefs.reminder_time = parse_reminder_time(data.get("reminder_time", "")) or prefs.reminder_time
        last_sent = data.get("reminder_last_sent_date_key")
        prefs.reminder_last_sent_date_key = last_sent if isinstance(last_sent, str) else None
        backend = data.get("storage_backend")
        prefs.storage_backend = backend if isinstance(backend, str) else None
        return prefs


class PreferencesStore:
    """JSON file persistence for :class:`Preferences` with atomic writes."""

    def __init__(self, path: Path | None = None):
        self.path = path or DATA_DIR / PREFERENCES_FILE

    def load(self) -> Preferences:
        if not self.path.exists():
            return Preferences()
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Ignoring unreadable preferences file %s: %s", self.path, exc)
            return Preferences()
        if not isinstance(data, dict):
            return Preferences()
        return Preferences.from_dict(data)

    def save(self, prefs: Preferences) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=".prefs-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(asdict(prefs), f, indent=2, sort_keys=True)
            os.replace(tmp, self.path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise
