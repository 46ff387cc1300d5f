"""
Streak & Behaviour Service
==========================
Reads the day log history and answers the questions the stats screen asks:

- How many consecutive days, ending today, has the target been met?
- Has the daily circuit count plateaued over the last week?
- Should the target go up (consistently beaten) or down (rarely met)?
- Is there a weekday the user reliably does more on?
- What fraction of recent days met the target?
- Is this week's total up or down on last week's?

Windows are counted in calendar days in the configured zone. A "recent"
window of N days covers today and the N days before it. The weekly
comparison uses half-open windows: this week is [today-7, today), last
week is [today-14, today-7), so today's partial count is never compared.

Days with no log row are simply absent; they are neither zero nor missed.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Callable, Optional

import numpy as np

from app.config import Settings, get_settings
from app.db.day_logs import DayLogRepository, SupabaseDayLogRepository
from app.models.sync import DayLog
from app.services.reminder_schedule import ReminderCalendar

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

STREAK_LOOKBACK_DAYS = 366

PLATEAU_WINDOW_DAYS = 7
PLATEAU_MIN_LOGS = 3
PLATEAU_MAX_STD = 1.5

ADJUSTMENT_WINDOW_DAYS = 7
ADJUSTMENT_MIN_LOGS = 5
RAISE_MIN_GOAL_RATE = 0.9
RAISE_MIN_AVG_RATIO = 1.2
RAISE_FACTOR = 1.1
LOWER_MAX_GOAL_RATE = 0.4
LOWER_FACTOR = 0.9

PATTERN_WINDOW_DAYS = 14
PATTERN_MIN_LOGS = 5
STRONG_PATTERN_RATIO = 1.5

CONSISTENCY_WINDOW_DAYS = 14

TREND_THRESHOLD_PCT = 5.0

WEEKDAY_NAMES = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")

NEED_MORE_DATA = "Need more data"
NEED_MORE_DATA_SUGGESTION = "Complete more days of circuit tracking for pattern analysis."
STRONG_PATTERN = "Strong weekly pattern detected"
CONSISTENT_PATTERN = "Consistent performance"
CONSISTENT_SUGGESTION = "Your performance is stable throughout the week. Keep up consistency!"


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

class TrendDirection(str, Enum):
    UP = "up"
    DOWN = "down"
    FLAT = "flat"


@dataclass
class PatternAnalysis:
    pattern: str
    suggestion: str
    best_day: Optional[str] = None
    worst_day: Optional[str] = None


@dataclass
class WeeklyComparison:
    this_week_total: int
    last_week_total: int

    @property
    def percent_change(self) -> float:
        if self.last_week_total <= 0:
            return 0.0
        return (self.this_week_total - self.last_week_total) / self.last_week_total * 100

    @property
    def trend(self) -> TrendDirection:
        change = self.percent_change
        if change > TREND_THRESHOLD_PCT:
            return TrendDirection.UP
        if change < -TREND_THRESHOLD_PCT:
            return TrendDirection.DOWN
        return TrendDirection.FLAT


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------

class StreakService:
    """Streak, plateau, target and weekly-pattern analysis over day logs.

    Every method reads the repository afresh; DayLogError propagates.
    """

    def __init__(
        self,
        repository: DayLogRepository,
        settings: Settings | None = None,
        calendar: ReminderCalendar | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._repository = repository
        self._settings = settings or get_settings()
        self._calendar = calendar or ReminderCalendar.from_settings(self._settings)
        self._clock = clock or (lambda: datetime.now(self._calendar.tz))

    def current_streak(self) -> int:
        """Consecutive goal-met days ending today. 0 if today is not yet met."""
        today = self._today()
        logs = self._repository.list_range(
            _key(today - timedelta(days=STREAK_LOOKBACK_DAYS)), _key(today)
        )
        by_key = {log.day_key: log for log in logs}

        streak = 0
        day = today
        while True:
            log = by_key.get(_key(day))
            if log is None or not _goal_met(log):
                break
            streak += 1
            day -= timedelta(days=1)
        return streak

    def detect_plateau(self, days: int = PLATEAU_WINDOW_DAYS) -> bool:
        """True when recent daily counts barely vary (population std < 1.5)."""
        logs = self._recent_logs(days)
        if len(logs) < PLATEAU_MIN_LOGS:
            return False
        completed = np.array([log.completed for log in logs], dtype=float)
        return bool(np.std(completed) < PLATEAU_MAX_STD)

    def suggest_target_adjustment(self) -> Optional[int]:
        """A new daily target, or None when the current one fits.

        The current target is the newest log's. Raised by 10% (never below
        the recent average) when it is nearly always beaten by a margin;
        lowered by 10% (never below 1) when it is rarely met.
        """
        logs = self._recent_logs(ADJUSTMENT_WINDOW_DAYS)
        if len(logs) < ADJUSTMENT_MIN_LOGS:
            return None

        avg_completed = float(np.mean([log.completed for log in logs]))
        current_target = logs[0].target
        goal_rate = _goal_rate(logs)

        if goal_rate > RAISE_MIN_GOAL_RATE and avg_completed > current_target * RAISE_MIN_AVG_RATIO:
            return max(_round_half_up(current_target * RAISE_FACTOR), int(avg_completed))
        if goal_rate < LOWER_MAX_GOAL_RATE:
            return max(_round_half_up(current_target * LOWER_FACTOR), 1)
        return None

    def pattern_analysis(self) -> PatternAnalysis:
        logs = self._recent_logs(PATTERN_WINDOW_DAYS)
        if len(logs) < PATTERN_MIN_LOGS:
            return PatternAnalysis(pattern=NEED_MORE_DATA, suggestion=NEED_MORE_DATA_SUGGESTION)

        by_weekday: dict[str, list[int]] = {}
        for log in logs:
            weekday = WEEKDAY_NAMES[date.fromisoformat(log.day_key).weekday()]
            by_weekday.setdefault(weekday, []).append(log.completed)

        # ties resolve to the earliest weekday
        averages = {
            name: float(np.mean(by_weekday[name])) for name in WEEKDAY_NAMES if name in by_weekday
        }
        best = max(averages, key=averages.__getitem__)
        worst = min(averages, key=averages.__getitem__)

        if averages[best] > averages[worst] * STRONG_PATTERN_RATIO:
            return PatternAnalysis(
                pattern=STRONG_PATTERN,
                suggestion=f"You perform best on {best}. Consider scheduling harder sessions on that day.",
                best_day=best,
                worst_day=worst,
            )
        return PatternAnalysis(
            pattern=CONSISTENT_PATTERN,
            suggestion=CONSISTENT_SUGGESTION,
            best_day=best,
            worst_day=worst,
        )

    def consistency_score(self, days: int = CONSISTENCY_WINDOW_DAYS) -> float:
        """Fraction of logged days in the window that met their target."""
        logs = self._recent_logs(days)
        if not logs:
            return 0.0
        return _goal_rate(logs)

    def weekly_comparison(self) -> WeeklyComparison:
        return WeeklyComparison(
            this_week_total=sum(log.completed for log in self._week_logs(0)),
            last_week_total=sum(log.completed for log in self._week_logs(1)),
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _today(self) -> date:
        return self._calendar.local_date(self._clock())

    def _recent_logs(self, days: int) -> list[DayLog]:
        today = self._today()
        return self._repository.list_range(_key(today - timedelta(days=days)), _key(today))

    def _week_logs(self, week_offset: int) -> list[DayLog]:
        end = self._today() - timedelta(days=7 * week_offset)
        start = end - timedelta(days=7)
        logs = self._repository.list_range(_key(start), _key(end - timedelta(days=1)))
        logger.debug("Week offset %d: %d logs in [%s, %s)", week_offset, len(logs), start, end)
        return logs


def _key(day: date) -> str:
    return day.isoformat()


def _goal_met(log: DayLog) -> bool:
    return log.completed >= log.target


def _goal_rate(logs: list[DayLog]) -> float:
    return sum(1 for log in logs if _goal_met(log)) / len(logs)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


# ---------------------------------------------------------------------------
# Singleton
# ---------------------------------------------------------------------------

_default_service: StreakService | None = None


def get_streak_service() -> StreakService:
    global _default_service
    if _default_service is None:
        _default_service = StreakService(SupabaseDayLogRepository())
    return _default_service
