"""
Notification Scheduler
======================
Registers reminder batches with a notification center and cancels them.

Every schedule pass first sweeps the whole identifier range
(``<prefix>.0`` .. ``<prefix>.<max-1>``) and then installs the new batch,
so a settings change never leaves stale reminders behind. Identifiers are
positional within a batch, which is what makes the blind sweep possible.

Two notification centers are provided:
- InMemoryNotificationCenter: process-local, used by tests and local runs.
- SupabaseNotificationCenter: persists pending reminders in the
  ``scheduled_reminders`` table for the push worker to deliver.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Optional

from supabase import Client

from app.config import Settings, get_settings
from app.db.supabase import get_supabase_client
from app.models.reminder import ReminderRequest, ReminderWindow
from app.services.reminder_schedule import ReminderCalendar, build_fire_dates

logger = logging.getLogger(__name__)

DEEP_LINK_KEY = "deepLink"


# ---------------------------------------------------------------------------
# Notification centers
# ---------------------------------------------------------------------------

class NotificationCenter(ABC):
    """Where one-shot reminder requests are registered."""

    @abstractmethod
    def add_requests(self, requests: list[ReminderRequest]) -> None: ...

    @abstractmethod
    def remove_pending(self, identifiers: list[str]) -> None: ...

    @abstractmethod
    def pending_requests(self) -> list[ReminderRequest]: ...


class InMemoryNotificationCenter(NotificationCenter):

    def __init__(self) -> None:
        self._pending: dict[str, ReminderRequest] = {}

    def add_requests(self, requests: list[ReminderRequest]) -> None:
        for request in requests:
            self._pending[request.identifier] = request

    def remove_pending(self, identifiers: list[str]) -> None:
        for identifier in identifiers:
            self._pending.pop(identifier, None)

    def pending_requests(self) -> list[ReminderRequest]:
        return sorted(self._pending.values(), key=lambda r: r.fire_date)


class SupabaseNotificationCenter(NotificationCenter):
    """Stores pending reminders in ``scheduled_reminders`` (one row per identifier)."""

    TABLE = "scheduled_reminders"
    # identifiers per DELETE; keeps the in_ filter in the query string short
    DELETE_BATCH_SIZE = 100

    def __init__(self, db: Client | None = None) -> None:
        self._db = db or get_supabase_client()

    def add_requests(self, requests: list[ReminderRequest]) -> None:
        if not requests:
            return
        rows = [
            {
                "identifier": r.identifier,
                "fire_date": r.fire_date.isoformat(),
                "title": r.title,
                "body": r.body,
                "deep_link": r.deep_link,
            }
            for r in requests
        ]
        self._db.table(self.TABLE).upsert(rows, on_conflict="identifier").execute()

    def remove_pending(self, identifiers: list[str]) -> None:
        for start in range(0, len(identifiers), self.DELETE_BATCH_SIZE):
            batch = identifiers[start:start + self.DELETE_BATCH_SIZE]
            self._db.table(self.TABLE).delete().in_("identifier", batch).execute()

    def pending_requests(self) -> list[ReminderRequest]:
        result = self._db.table(self.TABLE).select("*").order("fire_date").execute()
        return [ReminderRequest(**row) for row in (result.data or [])]


# ---------------------------------------------------------------------------
# Scheduler
# ---------------------------------------------------------------------------

class NotificationScheduler:
    """Turns a reminder window into a registered batch of reminder requests."""

    def __init__(
        self,
        center: NotificationCenter,
        settings: Settings | None = None,
        calendar: ReminderCalendar | None = None,
    ) -> None:
        self._center = center
        self._settings = settings or get_settings()
        self._calendar = calendar or ReminderCalendar.from_settings(self._settings)

    @property
    def calendar(self) -> ReminderCalendar:
        return self._calendar

    def schedule_reminders(
        self, window: ReminderWindow, now: Optional[datetime] = None
    ) -> list[ReminderRequest]:
        """Replace every scheduled reminder with a fresh batch for *window*."""
        self.cancel_all()

        now = now or datetime.now(self._calendar.tz)
        fire_dates = build_fire_dates(now, self._calendar, window)

        limit = self._settings.max_scheduled_reminders
        if len(fire_dates) > limit:
            # anything past the sweep range could never be cancelled
            logger.warning(
                "Truncating reminder batch from %d to %d fire dates", len(fire_dates), limit
            )
            fire_dates = fire_dates[:limit]

        requests = [
            ReminderRequest(
                identifier=self._identifier(index),
                fire_date=fire_date,
                title=self._settings.reminder_title,
                body=self._settings.reminder_body,
                deep_link=self._settings.reminder_deep_link,
            )
            for index, fire_date in enumerate(fire_dates)
        ]
        self._center.add_requests(requests)

        logger.info("Scheduled %d reminders", len(requests))
        return requests

    def cancel_all(self) -> None:
        self._center.remove_pending(self.pending_identifiers())

    def pending_identifiers(self) -> list[str]:
        return [self._identifier(i) for i in range(self._settings.max_scheduled_reminders)]

    def pending_requests(self) -> list[ReminderRequest]:
        return self._center.pending_requests()

    def _identifier(self, index: int) -> str:
        return f"{self._settings.reminder_identifier_prefix}.{index}"


# ---------------------------------------------------------------------------
# Deep links
# ---------------------------------------------------------------------------

def should_open_today(user_info: dict[str, Any], settings: Settings | None = None) -> bool:
    """True when a tapped reminder's payload points at the Today screen."""
    deep_link = user_info.get(DEEP_LINK_KEY)
    if not isinstance(deep_link, str):
        return False
    return deep_link == (settings or get_settings()).reminder_deep_link
