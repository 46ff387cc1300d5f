"""
Primary Sync Manager
====================
Phone-side half of the day-summary sync. The phone owns the truth for
today's completed/target counts and pushes full-state broadcasts to the
watch.

Responsibilities:
- refresh_summary(): rebuild today's DaySummary from the day log, broadcast
  it, and reschedule (or cancel) reminders now that the goal may be reached.
- Local mutations (increment, reset, target, floors): persist, then refresh.
- handle_message(): react to the watch's requestSummary / pendingIncrements
  / workoutPayload messages.

Broadcasts are fire-and-forget. A failed or impossible send is logged and
otherwise ignored; there is no ack and no retry beyond the next refresh.

Midnight guard: a pendingIncrements flush tagged with any day key other
than today's is discarded and answered with a fresh summary, so taps made
yesterday on a disconnected watch never land on today's count.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Optional

from app.config import Settings, get_settings
from app.db.day_logs import DayLogError, DayLogRepository, SupabaseDayLogRepository
from app.models.reminder import ReminderSettings
from app.models.sync import (
    DAY_KEY_KEY,
    PENDING_INCREMENTS_KEY,
    REQUEST_SUMMARY_KEY,
    WORKOUT_PAYLOAD_KEY,
    DayLog,
    DaySummary,
    MalformedPayloadError,
    StaleDayMismatchError,
    WorkoutSummary,
)
from app.services.channel import (
    ChannelInactiveError,
    DeviceChannel,
    HttpDeviceChannel,
    Payload,
    SendFailedError,
)
from app.services.reminder_schedule import ReminderCalendar
from app.services.reminders import ReminderService, get_reminder_service

logger = logging.getLogger(__name__)


class PrimarySyncManager:
    """Source of truth for today's DaySummary; broadcasts to the companion."""

    def __init__(
        self,
        repository: DayLogRepository,
        channel: DeviceChannel,
        reminders: ReminderService,
        settings: Settings | None = None,
        calendar: ReminderCalendar | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._repository = repository
        self._channel = channel
        self._reminders = reminders
        self._settings = settings or get_settings()
        self._calendar = calendar or ReminderCalendar.from_settings(self._settings)
        self._clock = clock or (lambda: datetime.now(self._calendar.tz))

        self.last_summary: Optional[DaySummary] = None
        self.last_workout_summary: Optional[WorkoutSummary] = None

    @property
    def today_key(self) -> str:
        return self._calendar.day_key(self._clock())

    @property
    def preferences(self) -> ReminderSettings:
        return self._reminders.settings

    # ---- Lifecycle -------------------------------------------------------

    async def start(self) -> bool:
        """Register for inbound messages and activate the channel."""
        self._channel.set_handlers(on_message=self.handle_message)
        activated = await self._channel.activate()
        if activated:
            await self.refresh_summary()
        else:
            logger.info("Companion channel not activated; broadcasts will be skipped")
        return activated

    # ---- Summary ---------------------------------------------------------

    def current_summary(self) -> DaySummary:
        """Today's summary straight from the day log, without broadcasting."""
        log = self._today_log()
        return self._summary_from(log)

    async def refresh_summary(self) -> DaySummary:
        summary = self.current_summary()
        self.last_summary = summary
        await self._broadcast(summary)
        self._reschedule_reminders(summary)
        return summary

    # ---- Local mutations -------------------------------------------------

    async def apply_increment(self, count: int) -> DaySummary:
        """Add *count* circuits to today. Non-positive counts are ignored."""
        if count <= 0:
            return self.last_summary or self.current_summary()
        log = self._today_log()
        log.completed += count
        self._repository.save(log)
        return await self.refresh_summary()

    async def increment(self) -> DaySummary:
        return await self.apply_increment(1)

    async def reset(self) -> DaySummary:
        log = self._today_log()
        log.completed = 0
        self._repository.save(log)
        return await self.refresh_summary()

    async def set_target(self, target: int) -> DaySummary:
        if target <= 0:
            raise ValueError("target must be positive")
        log = self._today_log()
        log.target = target
        self._repository.save(log)
        return await self.refresh_summary()

    async def set_floors_per_circuit(self, floors: int) -> DaySummary:
        self._reminders.settings = self.preferences.model_copy(
            update={"floors_per_circuit": max(floors, 1)}
        )
        return await self.refresh_summary()

    # ---- Inbound ---------------------------------------------------------

    async def handle_message(self, message: Payload) -> None:
        """Handle one message from the companion. Never raises."""
        try:
            await self._dispatch(message)
        except StaleDayMismatchError as exc:
            logger.info("%s; discarding increments and resending summary", exc)
            await self._refresh_quietly()
        except MalformedPayloadError as exc:
            logger.warning("Dropping malformed companion message: %s", exc)
        except DayLogError as exc:
            logger.error("Failed to apply companion message: %s", exc)
        except Exception:
            logger.exception("Unexpected failure handling companion message")

    async def _dispatch(self, message: Payload) -> None:
        if message.get(REQUEST_SUMMARY_KEY) is True:
            await self.refresh_summary()
            return

        if PENDING_INCREMENTS_KEY in message:
            count = message[PENDING_INCREMENTS_KEY]
            day_key = message.get(DAY_KEY_KEY)
            if not isinstance(count, int) or isinstance(count, bool):
                raise MalformedPayloadError(f"{PENDING_INCREMENTS_KEY} must be an integer")
            if not isinstance(day_key, str):
                raise MalformedPayloadError(f"Flush without {DAY_KEY_KEY}")

            today = self.today_key
            if day_key != today:
                raise StaleDayMismatchError(day_key, today)

            await self.apply_increment(count)
            return

        if WORKOUT_PAYLOAD_KEY in message:
            raw = message[WORKOUT_PAYLOAD_KEY]
            if not isinstance(raw, dict):
                raise MalformedPayloadError(f"{WORKOUT_PAYLOAD_KEY} must be an object")
            workout = WorkoutSummary.from_payload(raw)
            self.last_workout_summary = workout
            self._repository.save_workout(workout)
            logger.info("Recorded watch workout from %s", workout.date.isoformat())
            return

        raise MalformedPayloadError(f"Unrecognised message keys: {sorted(message)}")

    # ---- Helpers ---------------------------------------------------------

    def _today_log(self) -> DayLog:
        return self._repository.fetch_or_create(self.today_key, self._settings.default_daily_target)

    def _summary_from(self, log: DayLog) -> DaySummary:
        return DaySummary(
            day_key=log.day_key,
            completed=log.completed,
            target=log.target,
            floors_per_circuit=self.preferences.floors_per_circuit,
        )

    async def _broadcast(self, summary: DaySummary) -> None:
        try:
            await self._channel.update_context(summary.to_payload())
        except ChannelInactiveError:
            logger.debug("Companion channel inactive; summary %s not sent", summary.day_key)
        except SendFailedError as exc:
            logger.warning("Failed to broadcast summary to companion: %s", exc)

    async def _refresh_quietly(self) -> None:
        try:
            await self.refresh_summary()
        except DayLogError as exc:
            logger.error("Failed to refresh summary: %s", exc)
        except Exception:
            logger.exception("Unexpected failure refreshing summary")

    def _reschedule_reminders(self, summary: DaySummary) -> None:
        # the summary is already persisted and broadcast at this point
        try:
            self._reminders.schedule_or_cancel(goal_reached=summary.goal_reached, now=self._clock())
        except Exception:
            logger.exception("Failed to reschedule reminders for %s", summary.day_key)


# ---------------------------------------------------------------------------
# Singleton
# ---------------------------------------------------------------------------

_default_manager: PrimarySyncManager | None = None


def get_primary_sync_manager() -> PrimarySyncManager:
    global _default_manager
    if _default_manager is None:
        settings = get_settings()
        _default_manager = PrimarySyncManager(
            repository=SupabaseDayLogRepository(),
            channel=HttpDeviceChannel(
                settings.companion_url,
                timeout=settings.companion_request_timeout_seconds,
            ),
            reminders=get_reminder_service(),
            settings=settings,
        )
    return _default_manager
