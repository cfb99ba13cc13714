"""Analytics over stored entries: week chart, word cloud, check-in insights.

Every function here is pure and deterministic. Callers pass an explicit
``now``; its tzinfo defines the local calendar used for day buckets (a naive
``now`` is interpreted in the system's local zone). Rows that fail to parse
are skipped, never raised, so one corrupt record cannot block a chart.
"""

from __future__ import annotations

import math
import re
from collections import Counter
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, tzinfo
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable, Optional

from being_better.models.entries import (
    INTENSITY_AXES,
    RATING_MAX,
    RATING_MIN,
    RatingsRange,
    parse_timestamp,
)

WEEK_DAYS = 7
MONTH_DAYS = 30
TOP_N = 5
MIN_WORD_LENGTH = 2

CLOUD_WINDOWS = ("today", "week", "month", "all-time")
ALL_TIME_FROM_ISO = "1970-01-01T00:00:00+00:00"

_WORD_TOKEN = re.compile(r"[^\W_]+(?:[-'][^\W_]+)*")

STOPWORDS: dict[str, frozenset[str]] = {
    "en": frozenset({
        "a", "am", "an", "and", "are", "at", "be", "bit", "but", "for", "i", "in",
        "is", "it", "just", "me", "my", "not", "of", "on", "or", "so", "the", "to",
        "too", "very", "was", "with",
    }),
    "pl": frozenset({
        "a", "ale", "bardzo", "czy", "do", "i", "jak", "jest", "jestem", "mi",
        "mnie", "na", "nie", "o", "od", "po", "się", "tak", "to", "trochę", "w",
        "z", "ze", "że",
    }),
}

_WEEKDAY_LABELS: dict[str, tuple[str, ...]] = {
    "en": ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"),
    "pl": ("pon.", "wt.", "śr.", "czw.", "pt.", "sob.", "niedz."),
}


# ── Result types ─────────────────────────────────────────────────────────


@dataclass(frozen=True)
class RatingPoint:
    day_key: str
    day_label: str
    value: Optional[float]  # None = no entries that day


@dataclass(frozen=True)
class WordScore:
    word: str
    score: int


@dataclass(frozen=True)
class IntensityAverage:
    key: str
    average: Optional[float]  # None = no samples
    sample_count: int


@dataclass(frozen=True)
class DailyVolume:
    day_key: str
    day_label: str
    count: int


@dataclass(frozen=True)
class RankedItem:
    name: str
    count: int


@dataclass(frozen=True)
class CheckInInsights:
    total_check_ins: int
    active_days: int
    current_streak: int
    intensity_averages: list[IntensityAverage]
    daily_volume: list[DailyVolume]
    top_context_tags: list[RankedItem]
    top_suggested_words: list[RankedItem]


# ── Calendar helpers ─────────────────────────────────────────────────────


def round_half_up(value: float, places: int = 1) -> float:
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def _local_tz(now: datetime) -> tzinfo:
    return now.tzinfo if now.tzinfo is not None else now.astimezone().tzinfo


def local_date(timestamp: Any, tz: tzinfo) -> Optional[date]:
    dt = parse_timestamp(timestamp)
    if dt is None:
        return None
    return dt.astimezone(tz).date()


def date_key(day: date) -> str:
    return day.isoformat()


def day_label(day: date, locale: str = "en") -> str:
    """Short weekday + day/month label, e.g. ``Wed 05/01`` or ``śr. 01.05``."""
    weekdays = _WEEKDAY_LABELS.get(locale, _WEEKDAY_LABELS["en"])
    weekday = weekdays[day.weekday()]
    if locale == "pl":
        return f"{weekday} {day.day:02d}.{day.month:02d}"
    return f"{weekday} {day.month:02d}/{day.day:02d}"


def _last_days(today: date, count: int) -> list[date]:
    """``count`` consecutive days ending at ``today``, oldest first."""
    start = today - timedelta(days=count - 1)
    return [start + timedelta(days=i) for i in range(count)]


def _field(entry: Any, name: str, *aliases: str) -> Any:
    if isinstance(entry, dict):
        for key in (name, *aliases):
            if key in entry:
                return entry[key]
        return None
    return getattr(entry, name, None)


def _finite_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            return None
    if not isinstance(value, (int, float)) or not math.isfinite(value):
        return None
    return float(value)


def _scale_value(value: Any) -> Optional[int]:
    number = _finite_number(value)
    if number is None or not number.is_integer():
        return None
    number = int(number)
    return number if RATING_MIN <= number <= RATING_MAX else None


def _rank(counts: Counter, limit: int = TOP_N) -> list[RankedItem]:
    # sorted() is stable, so equal counts keep first-seen order
    ranked = sorted(counts.items(), key=lambda kv: -kv[1])
    return [RankedItem(name=name, count=count) for name, count in ranked[:limit]]


# ── Week chart ───────────────────────────────────────────────────────────


def build_last_week_series(
    entries: Iterable[Any],
    now: datetime,
    locale: str = "en",
) -> list[RatingPoint]:
    """Daily average rating for the 7 local days ending today, oldest first."""
    tz = _local_tz(now)
    days = _last_days(now.astimezone(tz).date(), WEEK_DAYS)
    window = set(days)

    buckets: dict[date, list[float]] = {}
    for entry in entries:
        day = local_date(_field(entry, "timestamp"), tz)
        rating = _finite_number(_field(entry, "rating"))
        if day is None or rating is None or day not in window:
            continue
        buckets.setdefault(day, []).append(rating)

    points = []
    for day in days:
        values = buckets.get(day)
        points.append(RatingPoint(
            day_key=date_key(day),
            day_label=day_label(day, locale),
            value=round_half_up(sum(values) / len(values)) if values else None,
        ))
    return points


# ── Word cloud ───────────────────────────────────────────────────────────


def tokenize_words(words: Iterable[Any], locale: str = "en") -> list[str]:
    stopwords = STOPWORDS.get(locale, STOPWORDS["en"])
    tokens = []
    for raw in words:
        for token in _WORD_TOKEN.findall(str(raw).casefold()):
            if len(token) >= MIN_WORD_LENGTH and token not in stopwords:
                tokens.append(token)
    return tokens


def build_word_cloud(entries: Iterable[Any], locale: str = "en") -> list[WordScore]:
    """Word frequencies across check-ins, most frequent first."""
    counts: Counter = Counter()
    for entry in entries:
        words = _field(entry, "words")
        if not isinstance(words, (list, tuple)):
            continue
        counts.update(tokenize_words(words, locale))

    ranked = sorted(counts.items(), key=lambda kv: -kv[1])
    return [WordScore(word=word, score=score) for word, score in ranked]


def get_word_cloud_window_range(window: str, now: datetime) -> RatingsRange:
    """Resolve a named window to concrete inclusive bounds ending tonight."""
    if window not in CLOUD_WINDOWS:
        raise ValueError(f"Unknown window: {window!r}")

    tz = _local_tz(now)
    today = now.astimezone(tz).date()
    end = datetime.combine(today + timedelta(days=1), time.min, tzinfo=tz) - timedelta(microseconds=1)

    if window == "all-time":
        return RatingsRange(from_iso=ALL_TIME_FROM_ISO, to_iso=end.isoformat())

    span = {"today": 1, "week": WEEK_DAYS, "month": MONTH_DAYS}[window]
    start = datetime.combine(today - timedelta(days=span - 1), time.min, tzinfo=tz)
    return RatingsRange(from_iso=start.isoformat(), to_iso=end.isoformat())


# ── Check-in insights ────────────────────────────────────────────────────


def current_streak(active: set[date], today: date) -> int:
    """Consecutive active days ending today, or yesterday if today is empty."""
    cursor = today if today in active else today - timedelta(days=1)
    streak = 0
    while cursor in active:
        streak += 1
        cursor -= timedelta(days=1)
    return streak


def build_check_in_insights(
    entries: Iterable[Any],
    now: datetime,
    locale: str = "en",
) -> CheckInInsights:
    tz = _local_tz(now)
    today = now.astimezone(tz).date()

    total = 0
    per_day: Counter = Counter()
    axis_samples: dict[str, list[int]] = {axis: [] for axis in INTENSITY_AXES}
    tag_counts: Counter = Counter()
    suggested_counts: Counter = Counter()

    for entry in entries:
        day = local_date(_field(entry, "timestamp"), tz)
        if day is None:
            continue
        total += 1
        per_day[day] += 1

        intensity = _field(entry, "intensity") or {}
        if isinstance(intensity, dict):
            for axis in INTENSITY_AXES:
                value = _scale_value(intensity.get(axis))
                if value is not None:
                    axis_samples[axis].append(value)

        tags = _field(entry, "context_tags", "contextTags") or ()
        tag_counts.update(list(dict.fromkeys(str(t).strip().lower() for t in tags if str(t).strip())))
        suggested = _field(entry, "suggested_words_used", "suggestedWordsUsed") or ()
        suggested_counts.update(list(dict.fromkeys(str(w) for w in suggested if str(w))))

    intensity_averages = [
        IntensityAverage(
            key=axis,
            average=round_half_up(sum(samples) / len(samples)) if samples else None,
            sample_count=len(samples),
        )
        for axis, samples in axis_samples.items()
    ]
    daily_volume = [
        DailyVolume(day_key=date_key(day), day_label=day_label(day, locale), count=per_day.get(day, 0))
        for day in _last_days(today, WEEK_DAYS)
    ]

    return CheckInInsights(
        total_check_ins=total,
        active_days=len(per_day),
        current_streak=current_streak(set(per_day), today),
        intensity_averages=intensity_averages,
        daily_volume=daily_volume,
        top_context_tags=_rank(tag_counts),
        top_suggested_words=_rank(suggested_counts),
    )
