"""Activity recorder — writes domain events into the day's inventory snapshot.

Every write goes through ``INSERT … ON CONFLICT DO UPDATE`` against a unique
key (``inventory_snapshots.day`` and ``category_counts(snapshot_id, tag)``),
so the first event of a day creates the snapshot and concurrent first writers
still end up sharing one row.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Mapping, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.database import async_session, utcnow
from app.models.inventory import ActivityEvent, ActivityType, CategoryCount, InventorySnapshot

logger = structlog.get_logger()

COUNTERS = ("total_books", "new_books_this_week", "new_users_this_week")


def _insert_for(session: AsyncSession):
    dialect = session.bind.dialect.name
    if dialect == "postgresql":
        return postgresql.insert
    if dialect == "sqlite":
        return sqlite.insert
    raise RuntimeError(f"Upserts are not supported on dialect {dialect!r}")


def day_key(moment: Optional[datetime] = None) -> date:
    """UTC calendar day a moment belongs to."""
    return (moment or utcnow()).date()


async def _upsert_snapshot(
    session: AsyncSession, day: date, deltas: Mapping[str, int]
) -> int:
    unknown = set(deltas) - set(COUNTERS)
    if unknown:
        raise ValueError(f"Unknown inventory counters: {sorted(unknown)}")

    insert = _insert_for(session)
    values = {name: int(deltas.get(name, 0)) for name in COUNTERS}
    stmt = insert(InventorySnapshot).values(day=day, created_at=utcnow(), updated_at=utcnow(), **values)
    stmt = stmt.on_conflict_do_update(
        index_elements=[InventorySnapshot.day],
        set_={
            **{
                name: getattr(InventorySnapshot, name) + stmt.excluded[name]
                for name in COUNTERS
            },
            "updated_at": stmt.excluded["updated_at"],
        },
    ).returning(InventorySnapshot.id)
    return (await session.execute(stmt)).scalar_one()


class ActivityRecorder:
    """Records activity events and counter changes, one transaction per call.

    Opens its own sessions from ``session_factory`` so it can run after the
    request that triggered it has already committed and closed.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def record(
        self,
        activity_type: ActivityType,
        user_id: Optional[int] = None,
        book_id: Optional[int] = None,
        deltas: Optional[Mapping[str, int]] = None,
        timestamp: Optional[datetime] = None,
    ) -> None:
        timestamp = timestamp or utcnow()
        async with self.session_factory() as session:
            async with session.begin():
                snapshot_id = await _upsert_snapshot(session, day_key(timestamp), deltas or {})
                session.add(
                    ActivityEvent(
                        snapshot_id=snapshot_id,
                        activity_type=ActivityType(activity_type),
                        user_id=user_id,
                        book_id=book_id,
                        timestamp=timestamp,
                    )
                )

        logger.info(
            "activity_recorded",
            activity_type=ActivityType(activity_type).value,
            user_id=user_id,
            book_id=book_id,
            deltas=dict(deltas or {}),
        )

    async def record_category_delta(
        self, tag: str, delta: int, timestamp: Optional[datetime] = None
    ) -> None:
        async with self.session_factory() as session:
            async with session.begin():
                snapshot_id = await _upsert_snapshot(session, day_key(timestamp), {})
                insert = _insert_for(session)
                stmt = insert(CategoryCount).values(snapshot_id=snapshot_id, tag=tag, count=delta)
                stmt = stmt.on_conflict_do_update(
                    index_elements=[CategoryCount.snapshot_id, CategoryCount.tag],
                    set_={"count": CategoryCount.count + stmt.excluded["count"]},
                )
                await session.execute(stmt)

        logger.info("category_count_adjusted", tag=tag, delta=delta)

    async def snapshot_for(self, day: Optional[date] = None) -> Optional[InventorySnapshot]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(InventorySnapshot).where(InventorySnapshot.day == (day or day_key()))
            )
            return result.scalar_one_or_none()


def snapshot_document(snapshot: InventorySnapshot) -> dict:
    """Render a snapshot in its persisted document shape."""
    return {
        "date": snapshot.day.isoformat(),
        "totalBooks": snapshot.total_books,
        "newBooksThisWeek": snapshot.new_books_this_week,
        "newUsersThisWeek": snapshot.new_users_this_week,
        "booksByCategory": [{"tag": c.tag, "count": c.count} for c in snapshot.categories],
        "userActivities": [
            {
                "activityType": e.activity_type.value,
                "user": e.user_id,
                "book": e.book_id,
                "timestamp": e.timestamp,
            }
            for e in snapshot.events
        ],
    }


activity_recorder = ActivityRecorder(async_session)


def get_activity_recorder() -> ActivityRecorder:
    return activity_recorder
