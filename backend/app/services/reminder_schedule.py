"""
Reminder Schedule Builder
=========================
Pure computation of reminder fire dates for the next seven eligible days.

Given ``now``, a calendar and a daily window, ``build_fire_dates`` walks
each eligible day from the window start to the window end (inclusive) in
interval steps and returns every instant that is not already in the past.

Rules:
- The first day is today if today's window start is still ahead of
  ``now``, otherwise tomorrow.
- With ``weekdays_only`` the seven iterations cover seven *weekdays*;
  weekend days are skipped entirely, not counted.
- Times are local wall-clock times in the calendar's zone. The walk itself
  steps in absolute time, so a DST transition inside a window shifts the
  later ticks the same way the platform's calendar arithmetic does.

No side effects. Registering or cancelling the resulting reminders is the
notification scheduler's job.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

from app.config import Settings
from app.models.reminder import ReminderWindow

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

DAYS_TO_SCHEDULE = 7
MIN_INTERVAL_MINUTES = 15
MINUTES_PER_DAY = 24 * 60
DEFAULT_WEEKEND_DAYS = frozenset({5, 6})  # Saturday, Sunday


# ---------------------------------------------------------------------------
# Calendar
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ReminderCalendar:
    """Local wall-clock calendar: a timezone plus its weekend definition."""

    tz: ZoneInfo = field(default_factory=lambda: ZoneInfo("UTC"))
    weekend_days: frozenset[int] = DEFAULT_WEEKEND_DAYS

    @classmethod
    def from_settings(cls, settings: Settings) -> "ReminderCalendar":
        return cls(tz=ZoneInfo(settings.timezone), weekend_days=frozenset(settings.weekend_days))

    def local_date(self, instant: datetime) -> date:
        return instant.astimezone(self.tz).date()

    def day_key(self, instant: datetime) -> str:
        """YYYY-MM-DD for *instant* in this calendar's zone."""
        return self.local_date(instant).isoformat()

    def is_weekend(self, day: date) -> bool:
        return day.weekday() in self.weekend_days

    def at_minutes(self, day: date, minutes: int) -> datetime:
        """*day* at the given minute-of-day, local time. Clamped to [0, 1439]."""
        clamped = min(max(minutes, 0), MINUTES_PER_DAY - 1)
        hour, minute = divmod(clamped, 60)
        return datetime.combine(day, time(hour=hour, minute=minute), tzinfo=self.tz)

    def add_minutes(self, instant: datetime, minutes: int) -> datetime:
        """Absolute-time addition, re-expressed in local time."""
        utc = instant.astimezone(timezone.utc) + timedelta(minutes=minutes)
        return utc.astimezone(self.tz)

    def next_weekday(self, day: date) -> date:
        candidate = day
        # bounded so a calendar with every day marked weekend cannot spin
        for _ in range(7):
            if not self.is_weekend(candidate):
                return candidate
            candidate += timedelta(days=1)
        return candidate


# ---------------------------------------------------------------------------
# Builder
# ---------------------------------------------------------------------------

def build_fire_dates(
    now: datetime,
    calendar: ReminderCalendar,
    window: ReminderWindow,
) -> list[datetime]:
    """Return the chronological fire dates for the next seven eligible days.

    ``now`` must be timezone-aware. Returns ``[]`` for a degenerate window.
    """
    if now.tzinfo is None:
        raise ValueError("now must be timezone-aware")

    interval = max(window.interval_minutes, MIN_INTERVAL_MINUTES)
    start = max(window.start_minute, 0)
    end = max(window.end_minute, start + 1)

    day = _first_day(now, calendar, start, window.weekdays_only)

    fire_dates: list[datetime] = []
    for _ in range(DAYS_TO_SCHEDULE):
        fire_dates.extend(_day_schedule(now, calendar, day, start, end, interval))

        day += timedelta(days=1)
        if window.weekdays_only:
            day = calendar.next_weekday(day)

    return fire_dates


def _first_day(now: datetime, calendar: ReminderCalendar, start: int, weekdays_only: bool) -> date:
    day = calendar.local_date(now)
    if _utc(calendar.at_minutes(day, start)) <= _utc(now):
        day += timedelta(days=1)
    if weekdays_only:
        day = calendar.next_weekday(day)
    return day


def _day_schedule(
    now: datetime,
    calendar: ReminderCalendar,
    day: date,
    start: int,
    end: int,
    interval: int,
) -> list[datetime]:
    day_start = calendar.at_minutes(day, start)
    day_end = calendar.at_minutes(day, end)
    if _utc(day_end) <= _utc(day_start):
        return []

    fire_dates: list[datetime] = []
    tick = day_start
    while _utc(tick) <= _utc(day_end):
        if _utc(tick) >= _utc(now):
            fire_dates.append(tick)
        tick = calendar.add_minutes(tick, interval)
    return fire_dates


def _utc(instant: datetime) -> datetime:
    # same-tzinfo comparisons ignore fold, so compare on the UTC timeline
    return instant.astimezone(timezone.utc)
