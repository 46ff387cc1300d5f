"""
Sync Schemas
============
Pydantic models and wire keys for the phone <-> watch day-summary sync.

The wire format is a flat key/value payload (camelCase keys, as the
watch app expects). Models convert to and from that form explicitly with
``to_payload()`` / ``from_payload()`` so the Python attribute names stay
snake_case.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

# ---------------------------------------------------------------------------
# Wire keys
# ---------------------------------------------------------------------------

REQUEST_SUMMARY_KEY = "requestSummary"
PENDING_INCREMENTS_KEY = "pendingIncrements"
WORKOUT_PAYLOAD_KEY = "workoutPayload"

DAY_KEY_KEY = "dayKey"
COMPLETED_KEY = "completed"
TARGET_KEY = "target"
FLOORS_PER_CIRCUIT_KEY = "floorsPerCircuit"


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class MalformedPayloadError(ValueError):
    """A received payload is missing a required key or has a wrong type."""


class StaleDayMismatchError(Exception):
    """A flush was tagged with a day key other than the receiver's today."""

    def __init__(self, received_day_key: str, current_day_key: str) -> None:
        self.received_day_key = received_day_key
        self.current_day_key = current_day_key
        super().__init__(
            f"Flush for {received_day_key} does not match current day {current_day_key}"
        )


# ---------------------------------------------------------------------------
# Status
# ---------------------------------------------------------------------------

class SyncStatus(str, Enum):
    """Companion sync indicator, reflecting the last channel outcome."""

    IDLE = "idle"
    SYNCING = "syncing"
    SYNCED = "synced"
    ERROR = "error"

    @property
    def label(self) -> str:
        return _STATUS_LABELS[self]


_STATUS_LABELS = {
    SyncStatus.IDLE: "Idle",
    SyncStatus.SYNCING: "Syncing",
    SyncStatus.SYNCED: "Synced",
    SyncStatus.ERROR: "Sync Error",
}


# ---------------------------------------------------------------------------
# Day summary
# ---------------------------------------------------------------------------

class DaySummary(BaseModel):
    """Authoritative state for one calendar day (owned by the primary)."""

    model_config = ConfigDict(frozen=True, strict=True)

    day_key: str = Field(..., pattern=r"^\d{4}-\d{2}-\d{2}$")
    completed: int = Field(..., ge=0)
    target: int = Field(..., gt=0)
    floors_per_circuit: int = Field(..., ge=1)

    @property
    def goal_reached(self) -> bool:
        return self.completed >= self.target

    def to_payload(self) -> dict[str, Any]:
        return {
            DAY_KEY_KEY: self.day_key,
            COMPLETED_KEY: self.completed,
            TARGET_KEY: self.target,
            FLOORS_PER_CIRCUIT_KEY: self.floors_per_circuit,
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "DaySummary":
        """Parse a broadcast payload. Raises MalformedPayloadError."""
        missing = [
            key
            for key in (DAY_KEY_KEY, COMPLETED_KEY, TARGET_KEY, FLOORS_PER_CIRCUIT_KEY)
            if key not in payload
        ]
        if missing:
            raise MalformedPayloadError(f"Summary payload missing keys: {', '.join(missing)}")
        try:
            return cls(
                day_key=payload[DAY_KEY_KEY],
                completed=payload[COMPLETED_KEY],
                target=payload[TARGET_KEY],
                floors_per_circuit=payload[FLOORS_PER_CIRCUIT_KEY],
            )
        except ValidationError as exc:
            raise MalformedPayloadError(f"Invalid summary payload: {exc}") from exc

    def with_completed(self, completed: int) -> "DaySummary":
        return self.model_copy(update={"completed": completed})


class DayLog(BaseModel):
    """Primary-side persisted row for one day."""

    day_key: str
    completed: int = Field(default=0, ge=0)
    target: int = Field(default=10, gt=0)


# ---------------------------------------------------------------------------
# Workout summary
# ---------------------------------------------------------------------------

class WorkoutSummary(BaseModel):
    """Summary of a workout recorded on the watch."""

    model_config = ConfigDict(frozen=True)

    date: datetime
    duration: float  # seconds
    floors: float
    active_energy: float
    average_heart_rate: float

    def to_payload(self) -> dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            "duration": self.duration,
            "floors": self.floors,
            "activeEnergy": self.active_energy,
            "averageHeartRate": self.average_heart_rate,
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "WorkoutSummary":
        try:
            return cls(
                date=payload["date"],
                duration=payload["duration"],
                floors=payload["floors"],
                active_energy=payload["activeEnergy"],
                average_heart_rate=payload["averageHeartRate"],
            )
        except (KeyError, TypeError) as exc:
            raise MalformedPayloadError(f"Workout payload missing key: {exc}") from exc
        except ValidationError as exc:
            raise MalformedPayloadError(f"Invalid workout payload: {exc}") from exc


# ---------------------------------------------------------------------------
# Message builders
# ---------------------------------------------------------------------------

def request_summary_message() -> dict[str, Any]:
    return {REQUEST_SUMMARY_KEY: True}


def pending_increments_message(count: int, day_key: str) -> dict[str, Any]:
    return {PENDING_INCREMENTS_KEY: count, DAY_KEY_KEY: day_key}


# ---------------------------------------------------------------------------
# API request / response
# ---------------------------------------------------------------------------

class IncrementRequest(BaseModel):
    count: int = Field(default=1, ge=1, le=100)


class TargetUpdate(BaseModel):
    target: int = Field(..., gt=0, le=1000)


class FloorsUpdate(BaseModel):
    floors_per_circuit: int = Field(..., ge=1, le=100)


class DaySummaryResponse(BaseModel):
    """Today's summary as returned to API clients."""

    day_key: str
    completed: int
    target: int
    floors_per_circuit: int
    goal_reached: bool
    last_workout: Optional[WorkoutSummary] = None

    @classmethod
    def from_summary(
        cls, summary: DaySummary, last_workout: Optional[WorkoutSummary] = None
    ) -> "DaySummaryResponse":
        return cls(
            day_key=summary.day_key,
            completed=summary.completed,
            target=summary.target,
            floors_per_circuit=summary.floors_per_circuit,
            goal_reached=summary.goal_reached,
            last_workout=last_workout,
        )


class SyncMessageAccepted(BaseModel):
    accepted: bool = True
    summary: DaySummaryResponse
