"""Entry records stored by every backend.

Ratings and check-ins are immutable once created: they are built on submit,
validated here, persisted through an adapter and only ever read back by
range query.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping, Optional

from being_better.errors import ValidationError

RATING_MIN = 1
RATING_MAX = 10

INTENSITY_AXES: tuple[str, ...] = ("energy", "stress", "anxiety", "joy")

PRESET_CONTEXT_TAGS: tuple[str, ...] = (
    "work", "family", "friends", "health", "sleep", "exercise", "weather", "money",
)
SUGGESTED_WORDS: tuple[str, ...] = (
    "calm", "tired", "anxious", "grateful", "stressed", "focused", "excited", "happy",
)

_WORD_SPLIT = re.compile(r"[\s,]+")


# ── Parsing helpers ──────────────────────────────────────────────────────


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 string into an aware datetime (naive → UTC)."""
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        dt = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _is_scale_value(value: Any) -> bool:
    return (
        isinstance(value, int)
        and not isinstance(value, bool)
        and RATING_MIN <= value <= RATING_MAX
    )


def _parse_scale(raw: str) -> Optional[int]:
    text = raw.strip()
    if not text:
        return None
    try:
        number = float(text)
    except ValueError:
        return None
    if not math.isfinite(number) or not number.is_integer():
        return None
    value = int(number)
    return value if RATING_MIN <= value <= RATING_MAX else None


def parse_rating_input(raw: str) -> Optional[int]:
    """Form input → rating, or None when it is not an integer in 1..10."""
    return _parse_scale(raw)


def parse_intensity_input(raw: str) -> Optional[int]:
    """Slider/field input → intensity, or None when empty or out of range."""
    return _parse_scale(raw)


def split_words(raw: str) -> list[str]:
    """Split free-text words on whitespace and commas, lowercased."""
    return [w for w in _WORD_SPLIT.split(raw.strip().lower()) if w]


def normalize_tag(raw: str) -> Optional[str]:
    tag = raw.strip().lower()
    return tag or None


def _unique(values: Iterable[str]) -> tuple[str, ...]:
    return tuple(dict.fromkeys(values))


# ── Records ──────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class RatingsRange:
    """Inclusive timestamp bounds for a list query."""
    from_iso: str
    to_iso: str

    def contains(self, timestamp: str) -> bool:
        ts = parse_timestamp(timestamp)
        start = parse_timestamp(self.from_iso)
        end = parse_timestamp(self.to_iso)
        if ts is None or start is None or end is None:
            return False
        return start <= ts <= end


@dataclass(frozen=True)
class RatingEntry:
    timestamp: str  # ISO 8601
    rating: int     # 1-10

    def __post_init__(self):
        if parse_timestamp(self.timestamp) is None:
            raise ValidationError(f"Invalid timestamp: {self.timestamp!r}")
        if not _is_scale_value(self.rating):
            raise ValidationError(f"Rating must be an integer 1-10, got {self.rating!r}")

    def to_dict(self) -> dict:
        return {"timestamp": self.timestamp, "rating": self.rating}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> RatingEntry:
        rating = data.get("rating")
        # Sheets and form posts hand ratings back as strings
        if isinstance(rating, str):
            rating = _parse_scale(rating)
        elif isinstance(rating, float) and math.isfinite(rating) and rating.is_integer():
            rating = int(rating)
        return cls(timestamp=data.get("timestamp"), rating=rating)


@dataclass(frozen=True)
class CheckInEntry:
    timestamp: str
    words: tuple[str, ...] = ()
    intensity: Mapping[str, Optional[int]] = field(default_factory=dict)
    context_tags: tuple[str, ...] = ()
    suggested_words_used: tuple[str, ...] = ()

    def __post_init__(self):
        if parse_timestamp(self.timestamp) is None:
            raise ValidationError(f"Invalid timestamp: {self.timestamp!r}")

        unknown = set(self.intensity) - set(INTENSITY_AXES)
        if unknown:
            raise ValidationError(f"Unknown intensity axes: {sorted(unknown)}")
        for axis, value in self.intensity.items():
            if value is not None and not _is_scale_value(value):
                raise ValidationError(f"Intensity '{axis}' must be an integer 1-10, got {value!r}")

        # frozen: normalize through object.__setattr__
        object.__setattr__(self, "words", tuple(str(w).lower() for w in self.words))
        object.__setattr__(self, "intensity", {axis: self.intensity.get(axis) for axis in INTENSITY_AXES})
        object.__setattr__(self, "context_tags", _unique(str(t).strip().lower() for t in self.context_tags if str(t).strip()))
        object.__setattr__(self, "suggested_words_used", _unique(str(w) for w in self.suggested_words_used))

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp,
            "words": list(self.words),
            "intensity": dict(self.intensity),
            "context_tags": list(self.context_tags),
            "suggested_words_used": list(self.suggested_words_used),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> CheckInEntry:
        # Accept the camelCase payloads the web client sends
        intensity = data.get("intensity") or {}
        return cls(
            timestamp=data.get("timestamp"),
            words=tuple(data.get("words") or ()),
            intensity={k: v for k, v in intensity.items()},
            context_tags=tuple(data.get("context_tags", data.get("contextTags")) or ()),
            suggested_words_used=tuple(
                data.get("suggested_words_used", data.get("suggestedWordsUsed")) or ()
            ),
        )
