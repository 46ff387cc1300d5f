"""
Watch Sync Router
=================
POST /api/v1/sync/messages — Deliver one message from the paired watch.

This is the inbound leg of the HTTP channel: the watch bridge posts the
same key/value payloads it would send over the pairing channel
(``requestSummary``, ``pendingIncrements`` + ``dayKey``, or a summary with
an embedded ``workoutPayload``). Outbound summaries go back over the
configured companion channel, not in this response.

Malformed or stale messages are still accepted (202): the sync protocol
drops them silently, so the bridge has nothing to retry.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Body, HTTPException, status

from app.db.day_logs import DayLogError
from app.models.sync import DaySummaryResponse, SyncMessageAccepted
from app.services.primary_sync import get_primary_sync_manager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/sync", tags=["sync"])


@router.post(
    "/messages",
    response_model=SyncMessageAccepted,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Deliver a message from the watch",
    responses={
        202: {"description": "Message handed to the sync manager"},
        422: {"description": "Body is not a JSON object"},
        500: {"description": "No summary cached and the day log could not be read"},
    },
)
async def receive_watch_message(
    message: dict[str, Any] = Body(..., description="Raw watch message payload"),
) -> SyncMessageAccepted:
    manager = get_primary_sync_manager()
    await manager.handle_message(message)

    summary = manager.last_summary
    if summary is None:
        try:
            summary = manager.current_summary()
        except DayLogError as exc:
            logger.error("Day log read failed after watch message: %s", exc)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail={"message": "Failed to read today's log", "code": "db_error"},
            ) from exc
    return SyncMessageAccepted(
        summary=DaySummaryResponse.from_summary(summary, manager.last_workout_summary),
    )
