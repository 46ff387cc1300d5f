"""
Day Log Repository
==================
Persistence for the primary device's per-day circuit counts and the
workout summaries received from the watch.

Tables:
    day_logs        UNIQUE(day_key) — completed / target per calendar day
    watch_workouts  one row per workout summary received from the watch

Upserts on day_key so a re-save of the same day overwrites rather than
duplicating. Any client or API failure surfaces as a DayLogError subclass;
callers never see raw PostgREST or transport exceptions.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from supabase import Client

from app.db.supabase import get_supabase_client
from app.models.sync import DayLog, WorkoutSummary

logger = logging.getLogger(__name__)


class DayLogError(Exception):
    """Base class for day log persistence failures."""


class DayLogSaveError(DayLogError):
    """The day log row could not be written."""


class DayLogReadError(DayLogError):
    """Day log rows could not be read."""


class DayLogRepository(ABC):

    @abstractmethod
    def fetch_or_create(self, day_key: str, default_target: int) -> DayLog: ...

    @abstractmethod
    def save(self, log: DayLog) -> DayLog: ...

    @abstractmethod
    def save_workout(self, workout: WorkoutSummary) -> None: ...

    @abstractmethod
    def list_range(self, start_key: str, end_key: str) -> list[DayLog]:
        """Logs with start_key <= day_key <= end_key, newest first."""


class InMemoryDayLogRepository(DayLogRepository):

    def __init__(self) -> None:
        self.logs: dict[str, DayLog] = {}
        self.workouts: list[WorkoutSummary] = []

    def fetch_or_create(self, day_key: str, default_target: int) -> DayLog:
        existing = self.logs.get(day_key)
        if existing is not None:
            return existing.model_copy()
        created = DayLog(day_key=day_key, target=default_target)
        self.logs[day_key] = created
        return created.model_copy()

    def save(self, log: DayLog) -> DayLog:
        self.logs[log.day_key] = log.model_copy()
        return log

    def save_workout(self, workout: WorkoutSummary) -> None:
        self.workouts.append(workout)

    def list_range(self, start_key: str, end_key: str) -> list[DayLog]:
        matching = [
            log.model_copy()
            for key, log in self.logs.items()
            if start_key <= key <= end_key
        ]
        return sorted(matching, key=lambda log: log.day_key, reverse=True)


class SupabaseDayLogRepository(DayLogRepository):

    def __init__(self, db: Client | None = None) -> None:
        self._db = db or get_supabase_client()

    def fetch_or_create(self, day_key: str, default_target: int) -> DayLog:
        try:
            result = (
                self._db.table("day_logs")
                .select("day_key, completed, target")
                .eq("day_key", day_key)
                .maybe_single()
                .execute()
            )
        except Exception as exc:
            logger.exception("Failed to read day log %s", day_key)
            raise DayLogReadError(f"Failed to read day log {day_key}") from exc

        if result and result.data:
            return DayLog(**result.data)

        return self.save(DayLog(day_key=day_key, target=default_target))

    def save(self, log: DayLog) -> DayLog:
        try:
            result = self._db.table("day_logs").upsert(
                log.model_dump(), on_conflict="day_key"
            ).execute()
        except Exception as exc:
            logger.exception("Day log upsert raised for %s", log.day_key)
            raise DayLogSaveError(f"Failed to save day log {log.day_key}") from exc

        if not result.data:
            logger.error("Failed to upsert day log %s", log.day_key)
            raise DayLogSaveError(f"Failed to save day log {log.day_key}")

        return DayLog(**result.data[0])

    def save_workout(self, workout: WorkoutSummary) -> None:
        try:
            self._db.table("watch_workouts").insert(
                {
                    "date": workout.date.isoformat(),
                    "duration_seconds": workout.duration,
                    "floors": workout.floors,
                    "active_energy": workout.active_energy,
                    "average_heart_rate": workout.average_heart_rate,
                }
            ).execute()
        except Exception as exc:
            logger.exception("Failed to insert watch workout")
            raise DayLogSaveError("Failed to save watch workout") from exc

    def list_range(self, start_key: str, end_key: str) -> list[DayLog]:
        try:
            result = (
                self._db.table("day_logs")
                .select("day_key, completed, target")
                .gte("day_key", start_key)
                .lte("day_key", end_key)
                .order("day_key", desc=True)
                .execute()
            )
        except Exception as exc:
            logger.exception("Failed to list day logs %s..%s", start_key, end_key)
            raise DayLogReadError(f"Failed to list day logs {start_key}..{end_key}") from exc

        return [DayLog(**row) for row in (result.data or [])]
