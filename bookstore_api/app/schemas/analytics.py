"""Analytics dashboard and activity log schemas (camelCase on the wire)."""

from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class DashboardCounts(CamelModel):
    total_books: int
    total_users: int
    total_reviews: int
    new_books_this_week: int
    new_users_this_week: int


class CategoryCountOut(CamelModel):
    tag: str
    count: int


class RecentActivity(CamelModel):
    activity_type: str
    timestamp: datetime
    user: Optional[str]
    book: Optional[str]


class TopRatedBook(CamelModel):
    id: int
    title: str
    author: str
    average_rating: float
    review_count: int


class DashboardResponse(CamelModel):
    counts: DashboardCounts
    books_by_category: list[CategoryCountOut]
    recent_activities: list[RecentActivity]
    top_rated_books: list[TopRatedBook]


class ActivityUser(CamelModel):
    id: int
    name: str
    email: str


class ActivityBook(CamelModel):
    id: int
    title: str


class ActivityLogEntry(CamelModel):
    id: int
    activity_type: str
    description: str
    user: Optional[ActivityUser]
    book: Optional[ActivityBook]
    timestamp: datetime


class ActivityTypeCount(CamelModel):
    type: str
    count: int


class DailyActivity(CamelModel):
    day: date = Field(..., alias="date")
    activities: list[ActivityTypeCount]
