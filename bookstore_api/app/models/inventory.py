"""Daily inventory snapshot with its category counters and activity log.

One row in ``inventory_snapshots`` per UTC calendar day; the unique ``day``
column is the key every write upserts against. Category counters and
activity events hang off the snapshot as child rows.
"""

from __future__ import annotations

import enum
from datetime import date, datetime
from typing import Optional

from sqlalchemy import (
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base, utcnow


class ActivityType(str, enum.Enum):
    SIGNUP = "signup"
    BOOK_ADDED = "book_added"
    BOOK_DELETED = "book_deleted"
    REVIEW_ADDED = "review_added"


class CategoryCount(Base):
    __tablename__ = "category_counts"
    __table_args__ = (UniqueConstraint("snapshot_id", "tag", name="uq_category_counts_snapshot_tag"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    snapshot_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("inventory_snapshots.id", ondelete="CASCADE"), nullable=False, index=True
    )
    tag: Mapped[str] = mapped_column(String(100), nullable=False)
    count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class ActivityEvent(Base):
    __tablename__ = "activity_events"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    snapshot_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("inventory_snapshots.id", ondelete="CASCADE"), nullable=False, index=True
    )
    activity_type: Mapped[ActivityType] = mapped_column(
        Enum(ActivityType, values_callable=lambda e: [x.value for x in e], name="activitytype"),
        nullable=False,
    )
    user_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    book_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("books.id", ondelete="SET NULL"), nullable=True
    )
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, index=True)


class InventorySnapshot(Base):
    __tablename__ = "inventory_snapshots"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    day: Mapped[date] = mapped_column(Date, unique=True, nullable=False, index=True)
    total_books: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    new_books_this_week: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    new_users_this_week: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    categories: Mapped[list[CategoryCount]] = relationship(
        order_by=CategoryCount.id, lazy="selectin", cascade="all, delete-orphan"
    )
    events: Mapped[list[ActivityEvent]] = relationship(
        order_by=ActivityEvent.id, lazy="selectin", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<InventorySnapshot day={self.day} total_books={self.total_books}>"
