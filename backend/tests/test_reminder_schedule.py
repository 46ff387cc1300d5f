"""
Tests for build_fire_dates
==========================
Covers:
- Monday 08:00 scenario: 9:00/9:30/10:00 on seven weekdays, weekends skipped
- First day rolls to tomorrow once today's window start has passed
- weekdays_only=False schedules Saturday and Sunday too
- Weekday start on a weekend rolls to Monday
- Output is strictly increasing and never before now
- Idempotence for identical inputs
- 1-minute window yields at most one fire date per day
- Clamps: negative start, end before start, interval below 15
- Window ending at 23:59 / starting at 23:59
- DST: ticks follow wall-clock local time across the spring-forward gap
- Naive now is rejected
- ReminderCalendar helpers (day key, weekend definition)

Run: pytest tests/test_reminder_schedule.py -v
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from app.models.reminder import ReminderWindow
from app.services.reminder_schedule import (
    DAYS_TO_SCHEDULE,
    ReminderCalendar,
    build_fire_dates,
)

UTC_CALENDAR = ReminderCalendar(tz=ZoneInfo("UTC"))

# 2026-01-19 is a Monday
_MONDAY_8AM = datetime(2026, 1, 19, 8, 0, tzinfo=timezone.utc)


def _window(start: int = 540, end: int = 600, interval: int = 30, weekdays_only: bool = True) -> ReminderWindow:
    return ReminderWindow(
        start_minute=start,
        end_minute=end,
        interval_minutes=interval,
        weekdays_only=weekdays_only,
    )


def _days(fire_dates: list[datetime]) -> list[date]:
    return sorted({d.date() for d in fire_dates})


# ---------------------------------------------------------------------------
# Scenarios
# ---------------------------------------------------------------------------

class TestWeekdayScenario:

    def test_monday_morning_window(self):
        """Monday 08:00, 09:00–10:00 every 30 min, weekdays only."""
        fire_dates = build_fire_dates(_MONDAY_8AM, UTC_CALENDAR, _window())

        assert fire_dates[:3] == [
            datetime(2026, 1, 19, 9, 0, tzinfo=timezone.utc),
            datetime(2026, 1, 19, 9, 30, tzinfo=timezone.utc),
            datetime(2026, 1, 19, 10, 0, tzinfo=timezone.utc),
        ]
        assert fire_dates[3] == datetime(2026, 1, 20, 9, 0, tzinfo=timezone.utc)
        assert len(fire_dates) == 3 * DAYS_TO_SCHEDULE

    def test_seven_weekdays_not_seven_calendar_days(self):
        fire_dates = build_fire_dates(_MONDAY_8AM, UTC_CALENDAR, _window())

        assert _days(fire_dates) == [
            date(2026, 1, 19),
            date(2026, 1, 20),
            date(2026, 1, 21),
            date(2026, 1, 22),
            date(2026, 1, 23),
            # 24th and 25th are the weekend
            date(2026, 1, 26),
            date(2026, 1, 27),
        ]

    def test_never_fires_on_weekend(self):
        fire_dates = build_fire_dates(_MONDAY_8AM, UTC_CALENDAR, _window())
        assert all(d.weekday() < 5 for d in fire_dates)

    def test_weekend_start_rolls_to_monday(self):
        saturday = datetime(2026, 1, 17, 7, 0, tzinfo=timezone.utc)
        fire_dates = build_fire_dates(saturday, UTC_CALENDAR, _window())

        assert fire_dates[0] == datetime(2026, 1, 19, 9, 0, tzinfo=timezone.utc)

    def test_all_days_when_weekdays_only_false(self):
        fire_dates = build_fire_dates(_MONDAY_8AM, UTC_CALENDAR, _window(weekdays_only=False))

        days = _days(fire_dates)
        assert len(days) == DAYS_TO_SCHEDULE
        assert days[0] == date(2026, 1, 19)
        assert days[-1] == date(2026, 1, 25)
        assert any(d.weekday() >= 5 for d in days)


class TestFirstDay:

    def test_window_already_started_rolls_to_tomorrow(self):
        """Once today's start has passed, today's remaining ticks are not scheduled."""
        now = datetime(2026, 1, 19, 9, 15, tzinfo=timezone.utc)
        fire_dates = build_fire_dates(now, UTC_CALENDAR, _window())

        assert fire_dates[0] == datetime(2026, 1, 20, 9, 0, tzinfo=timezone.utc)

    def test_now_exactly_at_start_rolls_to_tomorrow(self):
        now = datetime(2026, 1, 19, 9, 0, tzinfo=timezone.utc)
        fire_dates = build_fire_dates(now, UTC_CALENDAR, _window())

        assert fire_dates[0].date() == date(2026, 1, 20)

    def test_friday_evening_rolls_over_weekend(self):
        friday_evening = datetime(2026, 1, 23, 18, 0, tzinfo=timezone.utc)
        fire_dates = build_fire_dates(friday_evening, UTC_CALENDAR, _window())

        assert fire_dates[0] == datetime(2026, 1, 26, 9, 0, tzinfo=timezone.utc)

    def test_now_in_other_zone_uses_calendar_local_date(self):
        london = ReminderCalendar(tz=ZoneInfo("Europe/London"))
        # 23:30 Sunday in New York is 04:30 Monday in London
        now = datetime(2026, 1, 18, 23, 30, tzinfo=ZoneInfo("America/New_York"))
        fire_dates = build_fire_dates(now, london, _window())

        first = fire_dates[0].astimezone(ZoneInfo("Europe/London"))
        assert first.date() == date(2026, 1, 19)
        assert first.time() == time(9, 0)


# ---------------------------------------------------------------------------
# Properties
# ---------------------------------------------------------------------------

_PROPERTY_CASES = [
    (_MONDAY_8AM, _window()),
    (_MONDAY_8AM, _window(start=0, end=1439, interval=45, weekdays_only=False)),
    (datetime(2026, 1, 21, 13, 7, tzinfo=timezone.utc), _window(start=480, end=1200, interval=90)),
    (datetime(2026, 1, 24, 23, 59, tzinfo=timezone.utc), _window(start=60, end=1380, interval=120)),
    (datetime(2026, 1, 19, 8, 59, 59, tzinfo=timezone.utc), _window(start=540, end=1020, interval=15, weekdays_only=False)),
]


class TestProperties:

    @pytest.mark.parametrize("now,window", _PROPERTY_CASES)
    def test_strictly_increasing_and_future(self, now, window):
        fire_dates = build_fire_dates(now, UTC_CALENDAR, window)

        assert fire_dates, "expected a non-empty schedule"
        assert all(d >= now for d in fire_dates)
        assert all(a < b for a, b in zip(fire_dates, fire_dates[1:]))

    @pytest.mark.parametrize("now,window", _PROPERTY_CASES)
    def test_weekday_flag_respected(self, now, window):
        fire_dates = build_fire_dates(now, UTC_CALENDAR, window)
        if window.weekdays_only:
            assert all(not UTC_CALENDAR.is_weekend(d.date()) for d in fire_dates)

    @pytest.mark.parametrize("now,window", _PROPERTY_CASES)
    def test_idempotent(self, now, window):
        assert build_fire_dates(now, UTC_CALENDAR, window) == build_fire_dates(now, UTC_CALENDAR, window)

    @pytest.mark.parametrize("now,window", _PROPERTY_CASES)
    def test_all_within_window(self, now, window):
        for d in build_fire_dates(now, UTC_CALENDAR, window):
            minute_of_day = d.hour * 60 + d.minute
            assert window.start_minute <= minute_of_day <= window.end_minute


# ---------------------------------------------------------------------------
# Edge cases / clamps
# ---------------------------------------------------------------------------

class TestEdgeCases:

    def test_one_minute_window_at_most_one_per_day(self):
        fire_dates = build_fire_dates(_MONDAY_8AM, UTC_CALENDAR, _window(start=540, end=541, interval=30))

        assert len(fire_dates) == DAYS_TO_SCHEDULE
        assert len(_days(fire_dates)) == len(fire_dates)
        assert all(d.time() == time(9, 0) for d in fire_dates)

    def test_end_before_start_clamps_to_single_tick(self):
        fire_dates = build_fire_dates(_MONDAY_8AM, UTC_CALENDAR, _window(start=600, end=540))

        assert len(fire_dates) == DAYS_TO_SCHEDULE
        assert all(d.time() == time(10, 0) for d in fire_dates)

    def test_start_at_last_minute_of_day_is_empty(self):
        assert build_fire_dates(_MONDAY_8AM, UTC_CALENDAR, _window(start=1439, end=1439)) == []

    def test_negative_start_clamped_to_midnight(self):
        now = datetime(2026, 1, 18, 23, 0, tzinfo=timezone.utc)
        fire_dates = build_fire_dates(now, UTC_CALENDAR, _window(start=-30, end=60, interval=30))

        assert fire_dates[0] == datetime(2026, 1, 19, 0, 0, tzinfo=timezone.utc)

    def test_interval_below_minimum_clamped_to_15(self):
        fire_dates = build_fire_dates(_MONDAY_8AM, UTC_CALENDAR, _window(start=540, end=600, interval=5))

        first_day = [d for d in fire_dates if d.date() == date(2026, 1, 19)]
        assert [d.minute for d in first_day] == [0, 15, 30, 45, 0]

    def test_end_tick_included(self):
        fire_dates = build_fire_dates(_MONDAY_8AM, UTC_CALENDAR, _window(start=540, end=630, interval=45))

        first_day = [d.time() for d in fire_dates if d.date() == date(2026, 1, 19)]
        assert first_day == [time(9, 0), time(9, 45), time(10, 30)]

    def test_interval_not_dividing_window_stops_before_end(self):
        fire_dates = build_fire_dates(_MONDAY_8AM, UTC_CALENDAR, _window(start=540, end=620, interval=30))

        first_day = [d.time() for d in fire_dates if d.date() == date(2026, 1, 19)]
        assert first_day == [time(9, 0), time(9, 30), time(10, 0)]

    def test_naive_now_rejected(self):
        with pytest.raises(ValueError):
            build_fire_dates(datetime(2026, 1, 19, 8, 0), UTC_CALENDAR, _window())


class TestDaylightSaving:

    def test_spring_forward_follows_absolute_time(self):
        """US clocks jump 02:00 -> 03:00 on 2026-03-08."""
        new_york = ZoneInfo("America/New_York")
        calendar = ReminderCalendar(tz=new_york)
        now = datetime(2026, 3, 8, 0, 0, tzinfo=new_york)

        fire_dates = build_fire_dates(now, calendar, _window(start=60, end=240, interval=60, weekdays_only=False))
        first_day = [d for d in fire_dates if d.date() == date(2026, 3, 8)]

        assert [d.hour for d in first_day] == [1, 3, 4]
        gaps = [b - a for a, b in zip(first_day, first_day[1:])]
        assert all(
            (b.astimezone(timezone.utc) - a.astimezone(timezone.utc)) == timedelta(hours=1)
            for a, b in zip(first_day, first_day[1:])
        ), gaps

    def test_wall_clock_start_stays_fixed_across_transition(self):
        new_york = ZoneInfo("America/New_York")
        calendar = ReminderCalendar(tz=new_york)
        now = datetime(2026, 3, 6, 8, 0, tzinfo=new_york)  # Friday before the change

        fire_dates = build_fire_dates(now, calendar, _window())
        starts = [d for d in fire_dates if d.time() == time(9, 0)]

        assert len(starts) == DAYS_TO_SCHEDULE
        offsets = {d.utcoffset() for d in starts}
        assert offsets == {timedelta(hours=-5), timedelta(hours=-4)}


# ---------------------------------------------------------------------------
# Calendar helpers
# ---------------------------------------------------------------------------

class TestReminderCalendar:

    def test_day_key_uses_local_date(self):
        tokyo = ReminderCalendar(tz=ZoneInfo("Asia/Tokyo"))
        instant = datetime(2026, 1, 16, 20, 0, tzinfo=timezone.utc)
        assert tokyo.day_key(instant) == "2026-01-17"

    def test_custom_weekend(self):
        friday_saturday = ReminderCalendar(tz=ZoneInfo("UTC"), weekend_days=frozenset({4, 5}))
        thursday = datetime(2026, 1, 22, 18, 0, tzinfo=timezone.utc)

        fire_dates = build_fire_dates(thursday, friday_saturday, _window())

        assert fire_dates[0].date() == date(2026, 1, 25)  # Sunday is a working day here
        assert all(d.weekday() not in (4, 5) for d in fire_dates)

    def test_from_settings(self):
        from app.config import Settings

        calendar = ReminderCalendar.from_settings(Settings(timezone="Europe/Berlin", weekend_days=[6]))
        assert calendar.tz == ZoneInfo("Europe/Berlin")
        assert calendar.weekend_days == frozenset({6})
