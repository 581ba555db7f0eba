"""Analytics reader — read-only views over books, users, reviews and snapshots."""

from __future__ import annotations

from datetime import datetime, time, timedelta, timezone
from typing import Literal, Optional

import structlog
from fastapi import Depends
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.database import get_db, utcnow
from app.models.book import Book
from app.models.inventory import ActivityEvent, ActivityType, InventorySnapshot
from app.models.review import Review
from app.models.user import User
from app.schemas.analytics import (
    ActivityBook,
    ActivityLogEntry,
    ActivityTypeCount,
    ActivityUser,
    CategoryCountOut,
    DailyActivity,
    DashboardCounts,
    DashboardResponse,
    RecentActivity,
    TopRatedBook,
)
from app.services.activity import day_key
from app.services.cache import get_cached, set_cached

logger = structlog.get_logger()

Period = Literal["today", "7days", "30days", "all"]

DASHBOARD_CACHE_KEY = "analytics:dashboard"
RECENT_ACTIVITY_LIMIT = 10
TOP_RATED_LIMIT = 5


def period_start(period: Period, now: Optional[datetime] = None) -> Optional[datetime]:
    """Earliest timestamp included in ``period``; None means unbounded."""
    now = now or utcnow()
    if period == "today":
        return datetime.combine(day_key(now), time.min, tzinfo=timezone.utc)
    if period == "7days":
        return now - timedelta(days=7)
    if period == "30days":
        return now - timedelta(days=30)
    return None


def matching_activity_types(needle: str) -> list[ActivityType]:
    needle = needle.strip().lower()
    return [t for t in ActivityType if needle in t.value]


def describe_activity(
    activity_type: ActivityType, user_name: Optional[str], book_title: Optional[str]
) -> str:
    who = user_name or "A user"
    what = f'"{book_title}"' if book_title else "a book"
    if activity_type == ActivityType.SIGNUP:
        return f"{who} signed up"
    if activity_type == ActivityType.BOOK_ADDED:
        if book_title:
            return f"{who} added the book {what}"
        return f"{who} added a book"
    if activity_type == ActivityType.BOOK_DELETED:
        return f"{who} deleted {what}"
    return f"{who} reviewed {what}"


class AnalyticsReader:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def _scalar(self, stmt) -> int:
        return int((await self.session.execute(stmt)).scalar() or 0)

    async def get_dashboard(self) -> DashboardResponse:
        cached = await get_cached(DASHBOARD_CACHE_KEY)
        if cached:
            return DashboardResponse.model_validate(cached)

        now = utcnow()
        week_ago = now - timedelta(days=7)
        first_day = day_key(now) - timedelta(days=6)

        new_books, new_users = (
            await self.session.execute(
                select(
                    func.coalesce(func.sum(InventorySnapshot.new_books_this_week), 0),
                    func.coalesce(func.sum(InventorySnapshot.new_users_this_week), 0),
                ).where(InventorySnapshot.day >= first_day)
            )
        ).one()

        counts = DashboardCounts(
            total_books=await self._scalar(select(func.count(Book.id))),
            total_users=await self._scalar(select(func.count(User.id))),
            total_reviews=await self._scalar(select(func.count(Review.id))),
            new_books_this_week=int(new_books),
            new_users_this_week=int(new_users),
        )

        latest = (
            await self.session.execute(
                select(InventorySnapshot)
                .where(InventorySnapshot.day >= first_day)
                .order_by(InventorySnapshot.day.desc())
                .limit(1)
            )
        ).scalar_one_or_none()
        categories = [
            CategoryCountOut(tag=c.tag, count=c.count) for c in (latest.categories if latest else [])
        ]

        recent_rows = await self.session.execute(
            select(ActivityEvent.activity_type, ActivityEvent.timestamp, User.name, Book.title)
            .outerjoin(User, ActivityEvent.user_id == User.id)
            .outerjoin(Book, ActivityEvent.book_id == Book.id)
            .where(ActivityEvent.timestamp >= week_ago)
            .order_by(ActivityEvent.timestamp.desc(), ActivityEvent.id.desc())
            .limit(RECENT_ACTIVITY_LIMIT)
        )
        recent = [
            RecentActivity(activity_type=atype.value, timestamp=ts, user=user_name, book=title)
            for atype, ts, user_name, title in recent_rows.all()
        ]

        top_rows = await self.session.execute(
            select(Book)
            .order_by(Book.average_rating.desc(), Book.review_count.desc(), Book.id.asc())
            .limit(TOP_RATED_LIMIT)
        )
        top_rated = [
            TopRatedBook(
                id=b.id,
                title=b.title,
                author=b.author,
                average_rating=b.average_rating,
                review_count=b.review_count,
            )
            for b in top_rows.scalars().all()
        ]

        dashboard = DashboardResponse(
            counts=counts,
            books_by_category=categories,
            recent_activities=recent,
            top_rated_books=top_rated,
        )
        await set_cached(
            DASHBOARD_CACHE_KEY,
            dashboard.model_dump(mode="json", by_alias=True),
            ttl_seconds=get_settings().analytics_cache_ttl_seconds,
        )
        return dashboard

    async def get_user_activity(
        self,
        period: Period = "7days",
        action_type: Optional[str] = None,
        limit: int = 100,
    ) -> list[ActivityLogEntry]:
        query = (
            select(ActivityEvent, User, Book)
            .outerjoin(User, ActivityEvent.user_id == User.id)
            .outerjoin(Book, ActivityEvent.book_id == Book.id)
        )

        since = period_start(period)
        if since is not None:
            query = query.where(ActivityEvent.timestamp >= since)

        if action_type:
            types = matching_activity_types(action_type)
            if not types:
                return []
            query = query.where(ActivityEvent.activity_type.in_(types))

        query = query.order_by(ActivityEvent.timestamp.desc(), ActivityEvent.id.desc()).limit(limit)
        rows = (await self.session.execute(query)).all()

        return [
            ActivityLogEntry(
                id=event.id,
                activity_type=event.activity_type.value,
                description=describe_activity(
                    event.activity_type,
                    user.name if user else None,
                    book.title if book else None,
                ),
                user=ActivityUser(id=user.id, name=user.name, email=user.email) if user else None,
                book=ActivityBook(id=book.id, title=book.title) if book else None,
                timestamp=event.timestamp,
            )
            for event, user, book in rows
        ]

    async def get_activity_summary(self, days: int = 30) -> list[DailyActivity]:
        first_day = day_key() - timedelta(days=days)
        rows = await self.session.execute(
            select(InventorySnapshot.day, ActivityEvent.activity_type, func.count(ActivityEvent.id))
            .join(InventorySnapshot, ActivityEvent.snapshot_id == InventorySnapshot.id)
            .where(InventorySnapshot.day >= first_day)
            .group_by(InventorySnapshot.day, ActivityEvent.activity_type)
            .order_by(InventorySnapshot.day.asc(), ActivityEvent.activity_type.asc())
        )

        summary: dict = {}
        for day, activity_type, count in rows.all():
            summary.setdefault(day, []).append(ActivityTypeCount(type=activity_type.value, count=count))
        return [DailyActivity(day=day, activities=activities) for day, activities in summary.items()]


def get_analytics_reader(db: AsyncSession = Depends(get_db)) -> AnalyticsReader:
    return AnalyticsReader(db)
