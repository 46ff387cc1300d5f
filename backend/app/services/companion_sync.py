"""
Companion Sync Manager
======================
Watch-side half of the day-summary sync.

The watch keeps a cached replica of the phone's DaySummary plus a counter
of +1 taps not yet handed to the phone. Taps are applied to the replica
optimistically so the display updates immediately, even offline.

Known weak spots, kept on purpose:
- flush_pending_if_possible() zeroes the pending counter *before* the send
  is attempted. If the send then fails the taps are gone; the status flips
  to error but nothing is re-queued.
- Every inbound summary overwrites the replica (last-write-wins). A
  broadcast that raced an in-flight flush can briefly show a stale count
  until the phone's next broadcast arrives.
"""

from __future__ import annotations

import json
import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Optional

from app.config import Settings, get_settings
from app.models.sync import (
    WORKOUT_PAYLOAD_KEY,
    DaySummary,
    MalformedPayloadError,
    SyncStatus,
    WorkoutSummary,
    pending_increments_message,
    request_summary_message,
)
from app.services.channel import ChannelError, DeviceChannel, Payload

logger = logging.getLogger(__name__)

PENDING_KEY = "pendingIncrements"
SUMMARY_KEY = "summaryPayload"


# ---------------------------------------------------------------------------
# Local storage
# ---------------------------------------------------------------------------

class CompanionStore(ABC):
    """Watch-local persistence for the pending counter and cached summary."""

    @abstractmethod
    def get(self, key: str) -> Any: ...

    @abstractmethod
    def set(self, key: str, value: Any) -> None: ...

    @property
    def pending_increments(self) -> int:
        value = self.get(PENDING_KEY)
        return value if isinstance(value, int) else 0

    @pending_increments.setter
    def pending_increments(self, value: int) -> None:
        self.set(PENDING_KEY, value)

    @property
    def summary_payload(self) -> Optional[dict[str, Any]]:
        value = self.get(SUMMARY_KEY)
        return value if isinstance(value, dict) else None

    @summary_payload.setter
    def summary_payload(self, payload: dict[str, Any]) -> None:
        self.set(SUMMARY_KEY, payload)


class InMemoryCompanionStore(CompanionStore):

    def __init__(self) -> None:
        self._values: dict[str, Any] = {}

    def get(self, key: str) -> Any:
        return self._values.get(key)

    def set(self, key: str, value: Any) -> None:
        self._values[key] = value


class JsonFileCompanionStore(CompanionStore):
    """JSON file store, written atomically via a temp file on every set."""

    def __init__(self, path: Path | str) -> None:
        self._path = Path(path)
        self._values: dict[str, Any] = {}
        self._load()

    def get(self, key: str) -> Any:
        return self._values.get(key)

    def set(self, key: str, value: Any) -> None:
        self._values[key] = value
        self._save()

    def _load(self) -> None:
        if not self._path.exists():
            return
        try:
            with open(self._path, "r", encoding="utf-8") as f:
                saved = json.load(f)
        except (json.JSONDecodeError, OSError) as exc:
            logger.warning("Could not load companion state from %s, starting empty: %s", self._path, exc)
            return
        if isinstance(saved, dict):
            self._values = saved

    def _save(self) -> None:
        tmp_path = self._path.with_suffix(".tmp")
        try:
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(self._values, f, indent=2)
            os.replace(tmp_path, self._path)
        except OSError as exc:
            logger.error("Failed to persist companion state to %s: %s", self._path, exc)


# ---------------------------------------------------------------------------
# Manager
# ---------------------------------------------------------------------------

class CompanionSyncManager:
    """Replica + offline buffer for the phone's DaySummary."""

    def __init__(self, channel: DeviceChannel, store: CompanionStore) -> None:
        self._channel = channel
        self._store = store

        self.summary: Optional[DaySummary] = None
        self.sync_status = SyncStatus.IDLE
        self.last_workout_summary: Optional[WorkoutSummary] = None

    @property
    def pending_increments(self) -> int:
        return self._store.pending_increments

    # ---- Lifecycle -------------------------------------------------------

    async def start(self) -> bool:
        """Load the cached replica and (re)activate the channel.

        On activation the watch asks the phone for a fresh summary and
        flushes whatever taps piled up while disconnected.
        """
        self._load_cached_summary()
        self._channel.set_handlers(
            on_message=self.handle_summary_payload,
            on_context=self.handle_summary_payload,
        )

        if not self._channel.is_supported:
            return False

        self.sync_status = SyncStatus.SYNCING
        if not await self._channel.activate():
            self.sync_status = SyncStatus.ERROR
            return False

        await self.request_latest_summary()
        await self.flush_pending_if_possible()
        return True

    # ---- Actions ---------------------------------------------------------

    async def increment_offline(self) -> None:
        """Record one circuit tap, show it immediately, try to flush."""
        self._store.pending_increments = self._store.pending_increments + 1

        if self.summary is not None:
            self.summary = self.summary.with_completed(self.summary.completed + 1)
            self._store.summary_payload = self.summary.to_payload()

        await self.flush_pending_if_possible()

    async def request_latest_summary(self) -> None:
        if not self._channel.is_activated:
            return
        self.sync_status = SyncStatus.SYNCING
        await self._send(request_summary_message())

    async def flush_pending_if_possible(self) -> bool:
        """Hand buffered taps to the phone. Returns True if a flush was attempted."""
        if not self._channel.is_activated:
            return False
        pending = self._store.pending_increments
        if pending <= 0 or self.summary is None:
            return False

        message = pending_increments_message(pending, self.summary.day_key)
        self.sync_status = SyncStatus.SYNCING
        # zeroed before the send; a failed send loses these taps
        self._store.pending_increments = 0
        await self._send(message)
        return True

    async def record_workout_summary(self, workout: WorkoutSummary) -> None:
        """Keep the finished workout locally and forward it with the current summary."""
        self.last_workout_summary = workout
        self.sync_status = SyncStatus.SYNCING

        if not self._channel.is_activated or self.summary is None:
            self.sync_status = SyncStatus.ERROR
            return

        payload = self.summary.to_payload()
        payload[WORKOUT_PAYLOAD_KEY] = workout.to_payload()
        if await self._send(payload):
            self.sync_status = SyncStatus.SYNCED

    # ---- Inbound ---------------------------------------------------------

    async def handle_summary_payload(self, payload: Payload) -> None:
        """Apply a broadcast from the phone. Never raises."""
        handled = False

        try:
            summary = DaySummary.from_payload(payload)
        except MalformedPayloadError as exc:
            summary = None
            logger.debug("Payload carries no usable summary: %s", exc)

        if summary is not None:
            self.summary = summary
            self._store.summary_payload = summary.to_payload()
            self.sync_status = SyncStatus.SYNCED
            handled = True
            await self.flush_pending_if_possible()

        raw_workout = payload.get(WORKOUT_PAYLOAD_KEY)
        if isinstance(raw_workout, dict):
            try:
                self.last_workout_summary = WorkoutSummary.from_payload(raw_workout)
                handled = True
            except MalformedPayloadError as exc:
                logger.warning("Ignoring malformed workout payload: %s", exc)

        if not handled:
            logger.warning("Dropping malformed payload from phone: keys=%s", sorted(payload))

    # ---- Helpers ---------------------------------------------------------

    def _load_cached_summary(self) -> None:
        payload = self._store.summary_payload
        if payload is None:
            return
        try:
            self.summary = DaySummary.from_payload(payload)
        except MalformedPayloadError as exc:
            logger.warning("Discarding unreadable cached summary: %s", exc)

    async def _send(self, message: Payload) -> bool:
        try:
            await self._channel.send_message(message)
        except ChannelError as exc:
            logger.warning("Send to phone failed: %s", exc)
            self.sync_status = SyncStatus.ERROR
            return False
        return True


def create_companion_sync_manager(
    channel: DeviceChannel, settings: Settings | None = None
) -> CompanionSyncManager:
    """Companion manager persisting to the configured state file."""
    settings = settings or get_settings()
    return CompanionSyncManager(channel, JsonFileCompanionStore(settings.companion_state_path))
