"""
Reminder Schemas
================
Pydantic models for reminder settings, the scheduling window, and the
one-shot reminder requests handed to the notification collaborator.

Key design decisions:
- ReminderWindow is deliberately loose (plain ints). The scheduler clamps
  start/end/interval itself, so a degenerate window yields an empty list
  rather than a validation error deep inside a sync callback.
- ReminderSettings is the strict, user-facing model. Interval values are
  snapped to the nearest supported option on the way in.
"""

from __future__ import annotations

from datetime import datetime
from enum import IntEnum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.config import Settings


# ---------------------------------------------------------------------------
# Allowed values
# ---------------------------------------------------------------------------

class IntervalOption(IntEnum):
    """Reminder intervals offered in settings, in minutes."""

    THIRTY = 30
    FORTY_FIVE = 45
    SIXTY = 60
    NINETY = 90
    ONE_TWENTY = 120

    @property
    def label(self) -> str:
        return f"{self.value} min"

    @classmethod
    def closest(cls, minutes: int) -> "IntervalOption":
        """Nearest option to *minutes*. Ties go to the shorter interval."""
        return min(sorted(cls), key=lambda option: abs(option.value - minutes))


# ---------------------------------------------------------------------------
# Window (scheduler input)
# ---------------------------------------------------------------------------

class ReminderWindow(BaseModel):
    """Daily reminder window. Recreated on every settings change."""

    model_config = ConfigDict(frozen=True)

    start_minute: int
    end_minute: int
    interval_minutes: int
    weekdays_only: bool = True


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

class ReminderSettings(BaseModel):
    """User reminder preferences, passed explicitly into the services."""

    reminders_enabled: bool = False
    start_minutes: int = Field(default=9 * 60, ge=0, le=1439)
    end_minutes: int = Field(default=17 * 60, ge=0, le=1439)
    interval_minutes: int = Field(default=90, ge=1)
    weekdays_only: bool = True
    floors_per_circuit: int = 4

    @field_validator("interval_minutes")
    @classmethod
    def _snap_interval(cls, value: int) -> int:
        return IntervalOption.closest(value).value

    @field_validator("floors_per_circuit")
    @classmethod
    def _clamp_floors(cls, value: int) -> int:
        return max(value, 1)

    @classmethod
    def from_settings(cls, settings: Settings) -> "ReminderSettings":
        return cls(
            reminders_enabled=settings.reminders_enabled,
            start_minutes=settings.reminder_start_minutes,
            end_minutes=settings.reminder_end_minutes,
            interval_minutes=settings.reminder_interval_minutes,
            weekdays_only=settings.weekdays_only,
            floors_per_circuit=settings.floors_per_circuit,
        )

    @property
    def has_valid_window(self) -> bool:
        return self.start_minutes < self.end_minutes

    def window(self) -> ReminderWindow:
        return ReminderWindow(
            start_minute=self.start_minutes,
            end_minute=self.end_minutes,
            interval_minutes=self.interval_minutes,
            weekdays_only=self.weekdays_only,
        )


# ---------------------------------------------------------------------------
# Notification collaborator
# ---------------------------------------------------------------------------

class ReminderRequest(BaseModel):
    """One-shot local alert registered with the notification center."""

    model_config = ConfigDict(frozen=True)

    identifier: str
    fire_date: datetime
    title: str
    body: str
    deep_link: str

    @property
    def user_info(self) -> dict[str, str]:
        """Payload attached to the alert; read back when the user taps it."""
        return {"deepLink": self.deep_link}


# ---------------------------------------------------------------------------
# API request / response
# ---------------------------------------------------------------------------

class ReminderScheduleRequest(BaseModel):
    """Body for the schedule and preview endpoints."""

    settings: ReminderSettings
    goal_reached: bool = False
    now: Optional[datetime] = Field(
        default=None,
        description="Override the current time (preview only). Must be timezone-aware.",
    )


class ReminderScheduleResponse(BaseModel):
    """Outcome of a schedule-or-cancel pass."""

    scheduled: bool
    status_message: Optional[str] = None
    fire_dates: list[datetime] = []
