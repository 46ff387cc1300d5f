"""
Insights Router
===============
GET /api/v1/insights — Streak and behaviour summary for the stats screen.

Returns everything in one call so the app can render the stats screen in
a single round-trip:

  current_streak:     consecutive goal-met days ending today (0 if today
                      is not yet met).
  plateau:            true when the last week's daily counts barely vary.
  suggested_target:   a raised or lowered target, or null if the current
                      target fits.
  consistency_score:  fraction of logged days in the last two weeks that
                      met their target, 0..1.
  pattern:            best / worst weekday by average circuits, with a
                      one-line suggestion.
  weekly:             this week's total vs last week's, percent change
                      and trend (up / down / flat).

Sections are empty-ish for new users: streak 0, no suggestion, "Need more
data" pattern.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, Field

from app.db.day_logs import DayLogError
from app.services.streaks import TrendDirection, get_streak_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/insights", tags=["insights"])


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------

class PatternSummary(BaseModel):
    """Weekday pattern over the last two weeks."""
    pattern: str
    suggestion: str
    best_day: Optional[str] = None
    worst_day: Optional[str] = None


class WeeklyComparisonSummary(BaseModel):
    """Completed circuits this week vs the week before."""
    this_week_total: int
    last_week_total: int
    percent_change: float
    trend: TrendDirection


class InsightsResponse(BaseModel):
    """Full insights payload returned to the app."""
    current_streak: int = Field(..., ge=0)
    plateau: bool
    suggested_target: Optional[int] = None
    consistency_score: float = Field(..., ge=0.0, le=1.0)
    pattern: PatternSummary
    weekly: WeeklyComparisonSummary


# ---------------------------------------------------------------------------
# Endpoint
# ---------------------------------------------------------------------------

@router.get(
    "",
    response_model=InsightsResponse,
    status_code=status.HTTP_200_OK,
    summary="Get streak and behaviour insights",
    responses={
        200: {"description": "Insights returned"},
        500: {"description": "Day logs could not be read"},
    },
)
async def get_insights() -> InsightsResponse:
    service = get_streak_service()

    try:
        pattern = service.pattern_analysis()
        weekly = service.weekly_comparison()
        return InsightsResponse(
            current_streak=service.current_streak(),
            plateau=service.detect_plateau(),
            suggested_target=service.suggest_target_adjustment(),
            consistency_score=round(service.consistency_score(), 4),
            pattern=PatternSummary(
                pattern=pattern.pattern,
                suggestion=pattern.suggestion,
                best_day=pattern.best_day,
                worst_day=pattern.worst_day,
            ),
            weekly=WeeklyComparisonSummary(
                this_week_total=weekly.this_week_total,
                last_week_total=weekly.last_week_total,
                percent_change=round(weekly.percent_change, 2),
                trend=weekly.trend,
            ),
        )
    except DayLogError as exc:
        logger.error("Insights read failed: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"message": "Failed to read day logs", "code": "db_error"},
        ) from exc
