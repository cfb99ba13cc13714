"""Tests for the analytics engine (pure functions, no Redis needed)."""

import pytest
from datetime import date, datetime, timedelta, timezone

from being_better.engine.analytics import (
    ALL_TIME_FROM_ISO,
    WordScore,
    build_check_in_insights,
    build_last_week_series,
    build_word_cloud,
    current_streak,
    day_label,
    get_word_cloud_window_range,
    round_half_up,
    tokenize_words,
)


def _rating(ts, rating):
    return {"timestamp": ts, "rating": rating}


# ═══════════════════════════════════════════════════════════════════════════
# Week chart
# ═══════════════════════════════════════════════════════════════════════════


class TestLastWeekSeries:
    def test_daily_mean_and_empty_days(self, frozen_now):
        entries = [
            _rating("2024-05-01T09:00:00+00:00", 4),
            _rating("2024-05-01T18:00:00+00:00", 6),
        ]
        series = build_last_week_series(entries, frozen_now)
        assert len(series) == 7
        assert series[0].day_key == "2024-05-01"
        assert series[0].value == 5.0
        assert series[1].value is None
        assert series[-1].day_key == "2024-05-07"

    def test_length_is_always_seven(self, frozen_now):
        assert len(build_last_week_series([], frozen_now)) == 7

    def test_excludes_entries_outside_window(self, frozen_now):
        entries = [
            _rating("2024-04-30T12:00:00+00:00", 9),
            _rating("2024-05-08T12:00:00+00:00", 9),
        ]
        assert all(p.value is None for p in build_last_week_series(entries, frozen_now))

    def test_skips_malformed_rows(self, frozen_now):
        entries = [
            _rating("bad", 5),
            _rating("2024-05-07T10:00:00+00:00", float("nan")),
            _rating("2024-05-07T10:00:00+00:00", "not a number"),
            {"rating": 3},
            _rating("2024-05-07T11:00:00+00:00", 8),
        ]
        assert build_last_week_series(entries, frozen_now)[-1].value == 8.0

    def test_half_up_rounding(self, frozen_now):
        # 9 / 4 = 2.25 rounds up, not to even
        entries = [_rating("2024-05-07T08:00:00+00:00", v) for v in (2, 2, 2, 3)]
        assert build_last_week_series(entries, frozen_now)[-1].value == 2.3

    def test_uses_local_calendar_of_now(self):
        plus_two = timezone(timedelta(hours=2))
        now = datetime(2024, 5, 7, 12, 0, tzinfo=plus_two)
        # 23:30 UTC on the 6th is 01:30 local on the 7th
        series = build_last_week_series([_rating("2024-05-06T23:30:00+00:00", 7)], now)
        assert series[-1].day_key == "2024-05-07"
        assert series[-1].value == 7.0
        assert series[-2].value is None

    def test_accepts_entry_objects(self, frozen_now, make_rating):
        series = build_last_week_series([make_rating(6, days_ago=1)], frozen_now)
        assert series[-2].value == 6.0

    def test_polish_labels(self, frozen_now):
        series = build_last_week_series([], frozen_now, locale="pl")
        assert series[0].day_label == "śr. 01.05"


class TestDayLabel:
    def test_english(self):
        assert day_label(date(2024, 5, 1), "en") == "Wed 05/01"

    def test_polish(self):
        assert day_label(date(2024, 5, 5), "pl") == "niedz. 05.05"

    def test_unknown_locale_falls_back(self):
        assert day_label(date(2024, 5, 1), "de") == "Wed 05/01"


def test_round_half_up():
    assert round_half_up(2.25) == 2.3
    assert round_half_up(2.35) == 2.4
    assert round_half_up(1.0 / 3) == 0.3


# ═══════════════════════════════════════════════════════════════════════════
# Word cloud
# ═══════════════════════════════════════════════════════════════════════════


class TestWordCloud:
    def test_counts_across_entries(self):
        entries = [{"words": ["calm", "calm", "tired"]}, {"words": ["calm"]}]
        assert build_word_cloud(entries) == [WordScore("calm", 3), WordScore("tired", 1)]

    def test_case_folds(self):
        assert build_word_cloud([{"words": ["Calm", "CALM"]}]) == [WordScore("calm", 2)]

    def test_drops_short_tokens_and_stopwords(self):
        assert tokenize_words(["I", "am", "so", "ok", "x"], "en") == ["ok"]

    def test_polish_stopwords(self):
        assert tokenize_words(["jestem", "bardzo", "zmęczony"], "pl") == ["zmęczony"]

    def test_ties_keep_first_seen_order(self):
        cloud = build_word_cloud([{"words": ["beta", "alpha"]}, {"words": ["alpha", "beta"]}])
        assert [w.word for w in cloud] == ["beta", "alpha"]

    def test_skips_entries_without_word_list(self):
        assert build_word_cloud([{"words": None}, {"words": "calm"}, {}]) == []

    def test_accepts_entry_objects(self, make_check_in):
        cloud = build_word_cloud([make_check_in(words=("happy", "calm")), make_check_in()])
        assert cloud[0] == WordScore("calm", 2)


class TestWindowRange:
    def test_today(self, frozen_now):
        range_ = get_word_cloud_window_range("today", frozen_now)
        assert range_.from_iso == "2024-05-07T00:00:00+00:00"
        assert range_.to_iso == "2024-05-07T23:59:59.999999+00:00"

    def test_week_spans_seven_local_days(self, frozen_now):
        range_ = get_word_cloud_window_range("week", frozen_now)
        assert range_.from_iso == "2024-05-01T00:00:00+00:00"

    def test_month_spans_thirty_local_days(self, frozen_now):
        range_ = get_word_cloud_window_range("month", frozen_now)
        assert range_.from_iso == "2024-04-08T00:00:00+00:00"

    def test_all_time_lower_bound_is_epoch(self, frozen_now):
        range_ = get_word_cloud_window_range("all-time", frozen_now)
        assert range_.from_iso == ALL_TIME_FROM_ISO
        assert range_.contains("1999-01-01T00:00:00+00:00")

    def test_unknown_window(self, frozen_now):
        with pytest.raises(ValueError):
            get_word_cloud_window_range("year", frozen_now)


# ═══════════════════════════════════════════════════════════════════════════
# Check-in insights
# ═══════════════════════════════════════════════════════════════════════════


class TestStreak:
    TODAY = date(2024, 5, 7)

    def test_unbroken_run_ending_today(self):
        days = {self.TODAY - timedelta(days=n) for n in (0, 1, 2)}
        assert current_streak(days, self.TODAY) == 3

    def test_gap_breaks_streak(self):
        days = {self.TODAY, self.TODAY - timedelta(days=2)}
        assert current_streak(days, self.TODAY) == 1

    def test_run_ending_yesterday_counts(self):
        days = {self.TODAY - timedelta(days=1), self.TODAY - timedelta(days=2)}
        assert current_streak(days, self.TODAY) == 2

    def test_no_recent_activity(self):
        assert current_streak({self.TODAY - timedelta(days=3)}, self.TODAY) == 0
        assert current_streak(set(), self.TODAY) == 0


class TestCheckInInsights:
    def test_totals_and_streak(self, frozen_now, make_check_in):
        entries = [
            make_check_in(days_ago=0),
            make_check_in(days_ago=0, hour=8),
            make_check_in(days_ago=1),
            make_check_in(days_ago=2),
        ]
        insights = build_check_in_insights(entries, frozen_now)
        assert insights.total_check_ins == 4
        assert insights.active_days == 3
        assert insights.current_streak == 3

    def test_intensity_averages(self, frozen_now, make_check_in):
        entries = [
            make_check_in(intensity={"energy": 7, "stress": 2}),
            make_check_in(intensity={"energy": 8}),
        ]
        averages = {a.key: a for a in build_check_in_insights(entries, frozen_now).intensity_averages}
        assert [a for a in averages] == ["energy", "stress", "anxiety", "joy"]
        assert averages["energy"].average == 7.5
        assert averages["energy"].sample_count == 2
        assert averages["stress"].average == 2.0
        assert averages["anxiety"].average is None
        assert averages["anxiety"].sample_count == 0

    def test_daily_volume_zero_filled(self, frozen_now, make_check_in):
        insights = build_check_in_insights([make_check_in(days_ago=3)], frozen_now)
        assert len(insights.daily_volume) == 7
        assert [v.count for v in insights.daily_volume] == [0, 0, 0, 1, 0, 0, 0]
        assert insights.daily_volume[-1].day_key == "2024-05-07"

    def test_top_tags_counted_once_per_check_in(self, frozen_now):
        entries = [
            {"timestamp": "2024-05-07T10:00:00+00:00", "contextTags": ["Work", "work", "sleep"]},
            {"timestamp": "2024-05-07T11:00:00+00:00", "context_tags": ["sleep"]},
        ]
        top = build_check_in_insights(entries, frozen_now).top_context_tags
        assert [(t.name, t.count) for t in top] == [("sleep", 2), ("work", 1)]

    def test_top_lists_capped_at_five(self, frozen_now, make_check_in):
        tags = tuple(f"tag{i}" for i in range(8))
        insights = build_check_in_insights([make_check_in(context_tags=tags)], frozen_now)
        assert len(insights.top_context_tags) == 5

    def test_top_suggested_words(self, frozen_now, make_check_in):
        entries = [
            make_check_in(suggested_words_used=("calm", "tired")),
            make_check_in(suggested_words_used=("calm",)),
        ]
        top = build_check_in_insights(entries, frozen_now).top_suggested_words
        assert top[0].name == "calm"
        assert top[0].count == 2

    def test_skips_rows_with_bad_timestamp(self, frozen_now):
        insights = build_check_in_insights([{"timestamp": "nope", "words": ["calm"]}], frozen_now)
        assert insights.total_check_ins == 0
        assert insights.current_streak == 0

    def test_ignores_invalid_intensity_values(self, frozen_now):
        entries = [{"timestamp": "2024-05-07T10:00:00+00:00", "intensity": {"joy": 42, "energy": "5"}}]
        averages = {a.key: a for a in build_check_in_insights(entries, frozen_now).intensity_averages}
        assert averages["joy"].sample_count == 0
        assert averages["energy"].average == 5.0
