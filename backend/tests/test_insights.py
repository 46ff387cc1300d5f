"""
Tests for GET /api/v1/insights
==============================
Covers:
- Streak, plateau, suggestion, consistency, pattern and weekly sections
- New user with no logs gets zeroed sections
- Day log read failure -> 500 with db_error code

Run: pytest tests/test_insights.py -v
"""

from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import MagicMock, patch
from zoneinfo import ZoneInfo

from fastapi.testclient import TestClient

from app.config import Settings
from app.db.day_logs import DayLogReadError, InMemoryDayLogRepository
from app.models.sync import DayLog
from app.services.reminder_schedule import ReminderCalendar
from app.services.streaks import NEED_MORE_DATA, StreakService

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

_SETTINGS = Settings(timezone="UTC")
_CALENDAR = ReminderCalendar(tz=ZoneInfo("UTC"))
_NOW = datetime(2026, 1, 17, 10, 0, tzinfo=timezone.utc)


def _service(repo) -> StreakService:
    return StreakService(repo, settings=_SETTINGS, calendar=_CALENDAR, clock=lambda: _NOW)


def _get(service: StreakService):
    with patch("app.routers.insights.get_streak_service", return_value=service):
        from app.main import app
        client = TestClient(app)
        return client.get("/api/v1/insights")


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------

class TestInsights:

    def test_sections_returned(self):
        repo = InMemoryDayLogRepository()
        repo.save(DayLog(day_key="2026-01-17", completed=10, target=10))
        repo.save(DayLog(day_key="2026-01-16", completed=10, target=10))
        repo.save(DayLog(day_key="2026-01-15", completed=10, target=10))
        repo.save(DayLog(day_key="2026-01-14", completed=4, target=10))

        resp = _get(_service(repo))

        assert resp.status_code == 200
        data = resp.json()
        assert data["current_streak"] == 3
        assert data["plateau"] is False
        assert data["suggested_target"] is None
        assert data["consistency_score"] == 0.75
        assert data["pattern"]["pattern"] == NEED_MORE_DATA
        assert data["weekly"] == {
            "this_week_total": 24,
            "last_week_total": 0,
            "percent_change": 0.0,
            "trend": "flat",
        }

    def test_new_user(self):
        resp = _get(_service(InMemoryDayLogRepository()))

        assert resp.status_code == 200
        data = resp.json()
        assert data["current_streak"] == 0
        assert data["consistency_score"] == 0.0
        assert data["pattern"]["best_day"] is None

    def test_read_failure_returns_500(self):
        repo = MagicMock()
        repo.list_range.side_effect = DayLogReadError("postgrest 503")

        resp = _get(_service(repo))

        assert resp.status_code == 500
        assert resp.json()["detail"]["code"] == "db_error"
