"""
Reminders Router
================
POST   /api/v1/reminders/preview   — Fire dates for a settings draft (no side effects).
POST   /api/v1/reminders/schedule  — Save settings and schedule or cancel reminders.
DELETE /api/v1/reminders           — Cancel every scheduled reminder.
GET    /api/v1/reminders/pending   — Reminders currently scheduled.

Scheduling always replaces the whole batch. Disabled reminders or a reached
goal cancel everything; an inverted window cancels everything and returns
a status message for the settings screen.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, status

from app.models.reminder import (
    ReminderRequest,
    ReminderScheduleRequest,
    ReminderScheduleResponse,
)
from app.services.reminders import INVALID_WINDOW_MESSAGE, get_reminder_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/reminders", tags=["reminders"])


def _require_aware(body: ReminderScheduleRequest) -> None:
    if body.now is not None and body.now.tzinfo is None:
        raise HTTPException(
            status_code=422,
            detail={"message": "now must include a UTC offset", "code": "invalid_now"},
        )


@router.post(
    "/preview",
    response_model=ReminderScheduleResponse,
    summary="Preview reminder fire dates",
    description=(
        "Compute the next seven eligible days of fire dates for the given "
        "settings without registering anything."
    ),
)
async def preview_reminders(body: ReminderScheduleRequest) -> ReminderScheduleResponse:
    _require_aware(body)
    service = get_reminder_service()
    fire_dates = service.preview(body.settings, now=body.now)
    status_message = None if body.settings.has_valid_window else INVALID_WINDOW_MESSAGE
    return ReminderScheduleResponse(scheduled=False, status_message=status_message, fire_dates=fire_dates)


@router.post(
    "/schedule",
    response_model=ReminderScheduleResponse,
    summary="Schedule or cancel reminders",
    responses={
        200: {"description": "Batch replaced (or cancelled); see scheduled/status_message"},
        422: {"description": "Validation error (minutes out of range, naive now, etc.)"},
    },
)
async def schedule_reminders(body: ReminderScheduleRequest) -> ReminderScheduleResponse:
    _require_aware(body)
    service = get_reminder_service()
    service.settings = body.settings
    result = service.schedule_or_cancel(goal_reached=body.goal_reached, now=body.now)
    logger.info(
        "Reminder settings updated (scheduled=%s, count=%d)",
        result.scheduled, len(result.fire_dates),
    )
    return result


@router.delete(
    "",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Cancel all reminders",
)
async def cancel_reminders() -> None:
    get_reminder_service().cancel_all()


@router.get(
    "/pending",
    response_model=list[ReminderRequest],
    summary="List scheduled reminders",
)
async def list_pending_reminders() -> list[ReminderRequest]:
    return get_reminder_service().pending_requests()
