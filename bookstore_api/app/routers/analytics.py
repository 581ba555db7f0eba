"""Analytics routes — dashboard and activity log (admin only)."""

from __future__ import annotations

from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Query

from app.auth.dependencies import require_admin
from app.models.user import User
from app.schemas.analytics import ActivityLogEntry, DailyActivity, DashboardResponse
from app.services.analytics import AnalyticsReader, Period, get_analytics_reader

logger = structlog.get_logger()
router = APIRouter(prefix="/analytics", tags=["Analytics"])


@router.get("/dashboard", response_model=DashboardResponse)
async def dashboard(
    _admin: User = Depends(require_admin),
    reader: AnalyticsReader = Depends(get_analytics_reader),
):
    """Totals, weekly growth, category breakdown, recent activity and top rated books."""
    return await reader.get_dashboard()


@router.get("/user-activity", response_model=list[ActivityLogEntry])
async def user_activity(
    period: Period = "7days",
    action_type: Optional[str] = Query(None, alias="actionType"),
    limit: int = Query(100, ge=1, le=500),
    _admin: User = Depends(require_admin),
    reader: AnalyticsReader = Depends(get_analytics_reader),
):
    """Activity log since the start of ``period``, newest first."""
    entries = await reader.get_user_activity(period=period, action_type=action_type, limit=limit)
    logger.debug("activity_log_served", period=period, action_type=action_type, count=len(entries))
    return entries


@router.get("/activity-summary", response_model=list[DailyActivity])
async def activity_summary(
    days: int = Query(30, ge=1, le=365),
    _admin: User = Depends(require_admin),
    reader: AnalyticsReader = Depends(get_analytics_reader),
):
    """Per-day event counts by activity type."""
    return await reader.get_activity_summary(days=days)
