"""Rating aggregator — keeps ``Book.average_rating`` / ``review_count`` in sync.

The aggregate is rewritten by one ``UPDATE`` whose values are correlated
subqueries over ``reviews``, issued after taking the book's row lock. The
database does the read and the write in a single statement, and concurrent
recomputes for the same book queue on the lock, so the last one to run always
sees every committed review.
"""

from __future__ import annotations

from typing import Optional

import structlog
from sqlalchemy import Float, cast, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.database import async_session
from app.metrics import RATING_RECOMPUTES
from app.models.book import Book
from app.models.review import Review

logger = structlog.get_logger()


def _average_subquery():
    return (
        select(cast(func.coalesce(func.round(func.avg(Review.rating), 1), 0), Float))
        .where(Review.book_id == Book.id)
        .scalar_subquery()
    )


def _count_subquery():
    return select(func.count(Review.id)).where(Review.book_id == Book.id).scalar_subquery()


async def recompute(session: AsyncSession, book_id: int) -> Optional[tuple[float, int]]:
    """Recompute and store the rating aggregate of one book.

    Returns ``(average_rating, review_count)`` or ``None`` when the book no
    longer exists. Does not commit. Book instances already loaded in
    ``session`` are not refreshed.
    """
    locked = await session.execute(select(Book.id).where(Book.id == book_id).with_for_update())
    if locked.scalar_one_or_none() is None:
        logger.info("rating_recompute_skipped", book_id=book_id, reason="book_missing")
        return None

    stmt = (
        update(Book)
        .where(Book.id == book_id)
        .values(average_rating=_average_subquery(), review_count=_count_subquery())
        .returning(Book.average_rating, Book.review_count)
        .execution_options(synchronize_session=False)
    )
    average, count = (await session.execute(stmt)).one()
    RATING_RECOMPUTES.inc()

    logger.debug("rating_recomputed", book_id=book_id, average_rating=average, review_count=count)
    return float(average), int(count)


async def recompute_and_commit(session: AsyncSession, book_id: int) -> Optional[tuple[float, int]]:
    """Run :func:`recompute` as its own transaction on ``session``."""
    try:
        result = await recompute(session, book_id)
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    return result


async def recompute_detached(
    book_id: int, session_factory: async_sessionmaker[AsyncSession] = async_session
) -> Optional[tuple[float, int]]:
    """Recompute on a fresh session, leaving the caller's session untouched.

    A failed recompute rolls back only its own session, so objects the
    request already committed and still holds stay loaded.
    """
    async with session_factory() as session:
        return await recompute_and_commit(session, book_id)
