"""
Tests for POST /api/v1/sync/messages
====================================
Covers:
- pendingIncrements for today is applied and echoed in the response
- requestSummary returns the current summary
- Stale day key: accepted, increments discarded
- Reminder store failure after an applied flush still answers 202
- Unreadable day log with no cached summary -> 500 db_error
- workoutPayload is recorded and returned as last_workout
- Malformed messages are still accepted (202) and change nothing
- Non-object body -> 422

Run: pytest tests/test_sync_api.py -v
"""

from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import MagicMock, patch
from zoneinfo import ZoneInfo

from fastapi.testclient import TestClient

from app.config import Settings
from app.db.day_logs import DayLogReadError, InMemoryDayLogRepository
from app.models.reminder import ReminderSettings
from app.models.sync import DayLog
from app.services.channel import PairedChannel
from app.services.notifications import InMemoryNotificationCenter, NotificationScheduler
from app.services.primary_sync import PrimarySyncManager
from app.services.reminder_schedule import ReminderCalendar
from app.services.reminders import ReminderService

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

_SETTINGS = Settings(timezone="UTC", default_daily_target=10)
_CALENDAR = ReminderCalendar(tz=ZoneInfo("UTC"))
_DAY_KEY = "2026-01-17"
_NOW = datetime(2026, 1, 17, 10, 0, tzinfo=timezone.utc)

_WORKOUT_PAYLOAD = {
    "date": "2026-01-17T07:10:00+00:00",
    "duration": 754.0,
    "floors": 24.0,
    "activeEnergy": 96.5,
    "averageHeartRate": 141.0,
}


def _setup(
    completed: int = 5, center: InMemoryNotificationCenter | None = None
) -> tuple[PrimarySyncManager, InMemoryDayLogRepository]:
    repo = InMemoryDayLogRepository()
    repo.save(DayLog(day_key=_DAY_KEY, completed=completed, target=10))
    primary_end, _ = PairedChannel.pair()
    reminders = ReminderService(
        NotificationScheduler(center or InMemoryNotificationCenter(), settings=_SETTINGS, calendar=_CALENDAR),
        ReminderSettings(reminders_enabled=center is not None),
    )
    manager = PrimarySyncManager(
        repo, primary_end, reminders, settings=_SETTINGS, calendar=_CALENDAR, clock=lambda: _NOW
    )
    return manager, repo


class _UnavailableCenter(InMemoryNotificationCenter):

    def remove_pending(self, identifiers: list[str]) -> None:
        raise RuntimeError("postgrest 503")


def _post(manager: PrimarySyncManager, body):
    with patch("app.routers.sync.get_primary_sync_manager", return_value=manager):
        from app.main import app
        client = TestClient(app)
        return client.post("/api/v1/sync/messages", json=body)


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------

class TestWatchMessages:

    def test_pending_increments_applied(self):
        manager, repo = _setup(completed=5)
        resp = _post(manager, {"pendingIncrements": 2, "dayKey": _DAY_KEY})

        assert resp.status_code == 202
        data = resp.json()
        assert data["accepted"] is True
        assert data["summary"]["completed"] == 7
        assert repo.logs[_DAY_KEY].completed == 7

    def test_request_summary(self):
        manager, _ = _setup(completed=3)
        resp = _post(manager, {"requestSummary": True})

        assert resp.status_code == 202
        assert resp.json()["summary"]["completed"] == 3
        assert manager.last_summary.completed == 3

    def test_stale_day_discarded(self):
        manager, repo = _setup(completed=5)
        resp = _post(manager, {"pendingIncrements": 2, "dayKey": "2026-01-16"})

        assert resp.status_code == 202
        assert resp.json()["summary"]["completed"] == 5
        assert repo.logs[_DAY_KEY].completed == 5
        assert "2026-01-16" not in repo.logs

    def test_workout_recorded(self):
        manager, repo = _setup()
        resp = _post(manager, {"workoutPayload": _WORKOUT_PAYLOAD})

        assert resp.status_code == 202
        workout = resp.json()["summary"]["last_workout"]
        assert workout["floors"] == 24.0
        assert workout["average_heart_rate"] == 141.0
        assert len(repo.workouts) == 1

    def test_reminder_store_failure_still_accepted(self):
        manager, repo = _setup(completed=5, center=_UnavailableCenter())
        resp = _post(manager, {"pendingIncrements": 2, "dayKey": _DAY_KEY})

        assert resp.status_code == 202
        assert resp.json()["summary"]["completed"] == 7
        assert repo.logs[_DAY_KEY].completed == 7

    def test_unreadable_day_log_returns_500(self):
        repo = MagicMock()
        repo.fetch_or_create.side_effect = DayLogReadError("postgrest 503")
        primary_end, _ = PairedChannel.pair()
        reminders = ReminderService(
            NotificationScheduler(InMemoryNotificationCenter(), settings=_SETTINGS, calendar=_CALENDAR),
            ReminderSettings(),
        )
        manager = PrimarySyncManager(
            repo, primary_end, reminders, settings=_SETTINGS, calendar=_CALENDAR, clock=lambda: _NOW
        )

        resp = _post(manager, {"requestSummary": True})

        assert resp.status_code == 500
        assert resp.json()["detail"]["code"] == "db_error"


class TestMalformedMessages:

    def test_unknown_keys_accepted_and_ignored(self):
        manager, repo = _setup(completed=5)
        resp = _post(manager, {"hello": "watch"})

        assert resp.status_code == 202
        assert repo.logs[_DAY_KEY].completed == 5

    def test_flush_without_day_key_ignored(self):
        manager, repo = _setup(completed=5)
        resp = _post(manager, {"pendingIncrements": 2})

        assert resp.status_code == 202
        assert repo.logs[_DAY_KEY].completed == 5

    def test_non_object_body_rejected(self):
        manager, _ = _setup()
        resp = _post(manager, [1, 2, 3])

        assert resp.status_code == 422
