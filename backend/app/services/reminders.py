"""
Reminder Service
================
Decides whether reminders should exist at all, then delegates.

Decision logic:
    1. Reminders disabled, or today's goal already reached -> cancel all.
       The schedule builder is not invoked.
    2. Start time not before end time -> cancel all and report a status
       message for the settings screen.
    3. Otherwise -> replace the scheduled batch with a fresh one.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from app.config import get_settings
from app.models.reminder import ReminderRequest, ReminderScheduleResponse, ReminderSettings
from app.services.notifications import NotificationScheduler, SupabaseNotificationCenter
from app.services.reminder_schedule import build_fire_dates

logger = logging.getLogger(__name__)

INVALID_WINDOW_MESSAGE = "Start time must be before end time."


class ReminderService:
    """Schedule-or-cancel entry point for settings changes and goal events."""

    def __init__(self, scheduler: NotificationScheduler, settings: ReminderSettings) -> None:
        self._scheduler = scheduler
        self._settings = settings
        self.status_message: Optional[str] = None

    @property
    def settings(self) -> ReminderSettings:
        return self._settings

    @settings.setter
    def settings(self, settings: ReminderSettings) -> None:
        self._settings = settings

    def update_settings(self, settings: ReminderSettings, goal_reached: bool) -> ReminderScheduleResponse:
        """Swap in new settings and immediately reschedule."""
        self._settings = settings
        return self.schedule_or_cancel(goal_reached=goal_reached)

    def schedule_or_cancel(
        self, goal_reached: bool, now: Optional[datetime] = None
    ) -> ReminderScheduleResponse:
        settings = self._settings

        if not settings.reminders_enabled or goal_reached:
            self.status_message = None
            self._scheduler.cancel_all()
            logger.debug(
                "Reminders cancelled (enabled=%s, goal_reached=%s)",
                settings.reminders_enabled, goal_reached,
            )
            return ReminderScheduleResponse(scheduled=False)

        if not settings.has_valid_window:
            self.status_message = INVALID_WINDOW_MESSAGE
            self._scheduler.cancel_all()
            return ReminderScheduleResponse(scheduled=False, status_message=INVALID_WINDOW_MESSAGE)

        self.status_message = None
        requests = self._scheduler.schedule_reminders(settings.window(), now=now)
        return ReminderScheduleResponse(
            scheduled=True,
            fire_dates=[r.fire_date for r in requests],
        )

    def preview(self, settings: ReminderSettings, now: Optional[datetime] = None) -> list[datetime]:
        """Fire dates *settings* would produce, without touching the notification center.

        Empty for an inverted window, matching what schedule_or_cancel installs.
        """
        if not settings.has_valid_window:
            return []
        calendar = self._scheduler.calendar
        now = now or datetime.now(calendar.tz)
        return build_fire_dates(now, calendar, settings.window())

    def cancel_all(self) -> None:
        self.status_message = None
        self._scheduler.cancel_all()

    def pending_requests(self) -> list[ReminderRequest]:
        return self._scheduler.pending_requests()


# ---------------------------------------------------------------------------
# Singleton
# ---------------------------------------------------------------------------

_default_service: ReminderService | None = None


def get_reminder_service() -> ReminderService:
    global _default_service
    if _default_service is None:
        settings = get_settings()
        _default_service = ReminderService(
            NotificationScheduler(SupabaseNotificationCenter(), settings=settings),
            ReminderSettings.from_settings(settings),
        )
    return _default_service
