"""
Today Router
============
GET  /api/v1/today            — Today's day summary.
POST /api/v1/today/increment  — Log one or more completed circuits.
POST /api/v1/today/reset      — Reset today's completed count to zero.
PUT  /api/v1/today/target     — Change today's circuit target.
PUT  /api/v1/today/floors     — Change floors per circuit.

Every mutation persists the day log, broadcasts the new summary to the
paired watch (best effort) and reschedules reminders, since reaching the
target cancels the rest of the day's reminders.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, status

from app.db.day_logs import DayLogError
from app.models.sync import DaySummary, DaySummaryResponse, FloorsUpdate, IncrementRequest, TargetUpdate
from app.services.primary_sync import get_primary_sync_manager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/today", tags=["today"])


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _db_error(exc: Exception) -> HTTPException:
    logger.error("Day log write failed: %s", exc)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={"message": "Failed to read or save today's log", "code": "db_error"},
    )


def _response(summary: DaySummary) -> DaySummaryResponse:
    manager = get_primary_sync_manager()
    return DaySummaryResponse.from_summary(summary, manager.last_workout_summary)


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.get(
    "",
    response_model=DaySummaryResponse,
    summary="Get today's summary",
)
async def get_today() -> DaySummaryResponse:
    manager = get_primary_sync_manager()
    try:
        summary = manager.current_summary()
    except DayLogError as exc:
        raise _db_error(exc) from exc
    return _response(summary)


@router.post(
    "/increment",
    response_model=DaySummaryResponse,
    summary="Log completed circuits",
    responses={
        200: {"description": "Circuits added; summary broadcast to the watch"},
        422: {"description": "count outside 1..100"},
        500: {"description": "Day log could not be saved"},
    },
)
async def increment_today(body: IncrementRequest) -> DaySummaryResponse:
    manager = get_primary_sync_manager()
    try:
        summary = await manager.apply_increment(body.count)
    except DayLogError as exc:
        raise _db_error(exc) from exc
    return _response(summary)


@router.post(
    "/reset",
    response_model=DaySummaryResponse,
    summary="Reset today's completed count",
)
async def reset_today() -> DaySummaryResponse:
    manager = get_primary_sync_manager()
    try:
        summary = await manager.reset()
    except DayLogError as exc:
        raise _db_error(exc) from exc
    return _response(summary)


@router.put(
    "/target",
    response_model=DaySummaryResponse,
    summary="Change today's target",
)
async def update_target(body: TargetUpdate) -> DaySummaryResponse:
    manager = get_primary_sync_manager()
    try:
        summary = await manager.set_target(body.target)
    except DayLogError as exc:
        raise _db_error(exc) from exc
    return _response(summary)


@router.put(
    "/floors",
    response_model=DaySummaryResponse,
    summary="Change floors per circuit",
)
async def update_floors(body: FloorsUpdate) -> DaySummaryResponse:
    manager = get_primary_sync_manager()
    try:
        summary = await manager.set_floors_per_circuit(body.floors_per_circuit)
    except DayLogError as exc:
        raise _db_error(exc) from exc
    return _response(summary)
