"""Catalog service — books and reviews, with their bookkeeping side effects.

Primary writes (the book, the review) commit on their own. Everything derived
from them runs afterwards and best-effort:

- rating aggregate: synchronously, right after the review commit, on its own session
- activity events and category counters: queued on ``BackgroundTasks``
- cover image hosting: inline, failures only logged
"""

from __future__ import annotations

import math
from typing import Literal, Optional, Union

import structlog
from fastapi import BackgroundTasks, Depends
from sqlalchemy import delete, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.database import get_db
from app.errors import ConflictError, NotFoundError, PermissionDeniedError
from app.models.book import Book, BookTag
from app.models.inventory import ActivityType
from app.models.review import Review
from app.models.user import User
from app.schemas.book import BookCreate, BookUpdate
from app.services import image_host, ratings
from app.services.activity import ActivityRecorder, get_activity_recorder
from app.services.image_host import CoverUpload
from app.services.side_effects import run_best_effort, schedule

logger = structlog.get_logger()
settings = get_settings()

BookSort = Literal["newest", "oldest", "price_asc", "price_desc", "title", "rating"]

_SORTS = {
    "newest": (Book.created_at.desc(), Book.id.desc()),
    "oldest": (Book.created_at.asc(), Book.id.asc()),
    "price_asc": (Book.price.asc(), Book.id.asc()),
    "price_desc": (Book.price.desc(), Book.id.asc()),
    "title": (Book.title.asc(), Book.id.asc()),
    "rating": (Book.average_rating.desc(), Book.review_count.desc(), Book.id.asc()),
}


def normalize_tags(tags: list[str]) -> list[str]:
    """Strip, drop blanks and de-duplicate while keeping first-seen order."""
    seen: dict[str, None] = {}
    for tag in tags:
        tag = tag.strip()
        if tag:
            seen.setdefault(tag, None)
    return list(seen)


def total_pages(total: int, limit: int) -> int:
    return math.ceil(total / limit) if total else 0


class CatalogService:
    def __init__(
        self,
        session: AsyncSession,
        recorder: ActivityRecorder,
        background_tasks: BackgroundTasks,
    ):
        self.session = session
        self.recorder = recorder
        self.background_tasks = background_tasks

    # ── Books ──

    async def list_books(
        self,
        search: Optional[str] = None,
        category: Optional[str] = None,
        min_price: Optional[float] = None,
        max_price: Optional[float] = None,
        tag: Optional[str] = None,
        sort: BookSort = "newest",
        page: int = 1,
        limit: int = 12,
    ) -> tuple[list[Book], int]:
        query = select(Book)

        if search:
            # autoescape keeps % and _ in user input literal
            query = query.where(
                or_(
                    Book.title.icontains(search, autoescape=True),
                    Book.author.icontains(search, autoescape=True),
                    Book.isbn.icontains(search, autoescape=True),
                )
            )
        if category:
            query = query.where(func.lower(Book.category) == category.lower())
        if min_price is not None:
            query = query.where(Book.price >= min_price)
        if max_price is not None:
            query = query.where(Book.price <= max_price)
        if tag:
            query = query.where(Book.id.in_(select(BookTag.book_id).where(BookTag.tag == tag)))

        count_query = select(func.count()).select_from(query.subquery())
        total = (await self.session.execute(count_query)).scalar() or 0

        query = query.order_by(*_SORTS[sort]).offset((page - 1) * limit).limit(limit)
        books = (await self.session.execute(query)).scalars().all()
        return list(books), total

    async def list_owned_books(self, owner: User) -> list[Book]:
        result = await self.session.execute(
            select(Book).where(Book.owner_id == owner.id).order_by(Book.created_at.desc(), Book.id.desc())
        )
        return list(result.scalars().all())

    async def get_book(self, book_id: int) -> Book:
        result = await self.session.execute(select(Book).where(Book.id == book_id))
        book = result.scalar_one_or_none()
        if book is None:
            raise NotFoundError("Book not found")
        return book

    async def _get_editable_book(self, actor: User, book_id: int, action: str) -> Book:
        book = await self.get_book(book_id)
        if book.owner_id != actor.id and not actor.is_admin:
            raise PermissionDeniedError(f"Not authorized to {action} this book")
        return book

    async def create_book(
        self, owner: User, data: BookCreate, cover: Optional[CoverUpload] = None
    ) -> Book:
        fields = data.model_dump(exclude={"tags", "cover_image_url"})
        book = Book(**fields, owner_id=owner.id)
        book.owner = owner
        book.tags = normalize_tags(data.tags)
        if data.cover_image_url and not settings.image_host_configured:
            book.cover_image_url = data.cover_image_url

        self.session.add(book)
        await self.session.commit()
        logger.info("book_created", book_id=book.id, owner_id=owner.id, tags=book.tags)

        await self._place_cover(book, cover or data.cover_image_url, uploaded=cover is not None)

        schedule(
            self.background_tasks,
            "activity_book_added",
            self.recorder.record,
            ActivityType.BOOK_ADDED,
            user_id=owner.id,
            book_id=book.id,
            deltas={"total_books": 1, "new_books_this_week": 1},
        )
        self._schedule_category_deltas(book.tags, +1)
        return book

    async def update_book(
        self, actor: User, book_id: int, data: BookUpdate, cover: Optional[CoverUpload] = None
    ) -> Book:
        book = await self._get_editable_book(actor, book_id, "update")

        changes = data.model_dump(exclude_unset=True, exclude={"tags", "cover_image_url"})
        for field, value in changes.items():
            if value is not None:
                setattr(book, field, value)
        if data.tags is not None:
            book.tags = normalize_tags(data.tags)

        new_cover = data.cover_image_url
        if new_cover and not settings.image_host_configured:
            book.cover_image_url = new_cover

        await self.session.commit()
        logger.info("book_updated", book_id=book.id, actor_id=actor.id, fields=sorted(changes))

        previous = book.cover_image_public_id
        if await self._place_cover(book, cover or new_cover, uploaded=cover is not None) and previous:
            await run_best_effort("cover_image_delete", image_host.delete_image, previous)
        return book

    async def delete_book(self, actor: User, book_id: int) -> None:
        book = await self._get_editable_book(actor, book_id, "delete")
        tags = list(book.tags)
        cover_public_id = book.cover_image_public_id

        await self.session.execute(delete(Review).where(Review.book_id == book.id))
        await self.session.delete(book)
        await self.session.commit()
        logger.info("book_deleted", book_id=book_id, actor_id=actor.id)

        if cover_public_id and settings.image_host_configured:
            schedule(self.background_tasks, "cover_image_delete", image_host.delete_image, cover_public_id)

        schedule(
            self.background_tasks,
            "activity_book_deleted",
            self.recorder.record,
            ActivityType.BOOK_DELETED,
            user_id=actor.id,
            deltas={"total_books": -1},
        )
        self._schedule_category_deltas(tags, -1)

    def _schedule_category_deltas(self, tags: list[str], delta: int) -> None:
        for tag in tags:
            schedule(
                self.background_tasks,
                "category_count",
                self.recorder.record_category_delta,
                tag,
                delta,
            )

    async def _place_cover(
        self, book: Book, source: Union[str, CoverUpload, None], uploaded: bool
    ) -> bool:
        """Host a new cover for ``book``; returns whether it was stored."""
        if not source:
            return False
        if not settings.image_host_configured:
            if uploaded:
                logger.warning("cover_upload_skipped", book_id=book.id, reason="image_host_not_configured")
            return False

        try:
            hosted = await image_host.upload_image(source)
        except Exception as exc:
            logger.warning("cover_upload_failed", book_id=book.id, error=str(exc))
            return False

        book.cover_image_url = hosted.url
        book.cover_image_public_id = hosted.public_id
        await self.session.commit()
        return True

    # ── Reviews ──

    async def list_reviews(self, book_id: int, page: int = 1, limit: int = 10) -> tuple[list[Review], int]:
        await self.get_book(book_id)

        total = (
            await self.session.execute(select(func.count(Review.id)).where(Review.book_id == book_id))
        ).scalar() or 0
        result = await self.session.execute(
            select(Review)
            .where(Review.book_id == book_id)
            .order_by(Review.created_at.desc(), Review.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return list(result.scalars().all()), total

    async def add_review(self, user: User, book_id: int, rating: int, comment: str) -> Review:
        book = await self.get_book(book_id)

        review = Review(rating=rating, comment=comment, book_id=book.id, user_id=user.id)
        review.user = user
        self.session.add(review)
        try:
            await self.session.commit()
        except IntegrityError:
            # UNIQUE(book_id, user_id) closes the check-then-insert race
            await self.session.rollback()
            raise ConflictError("You have already reviewed this book")

        logger.info("review_created", review_id=review.id, book_id=book_id, user_id=user.id)

        await run_best_effort("rating_recompute", ratings.recompute_detached, book_id)
        schedule(
            self.background_tasks,
            "activity_review_added",
            self.recorder.record,
            ActivityType.REVIEW_ADDED,
            user_id=user.id,
            book_id=book_id,
        )
        return review

    async def delete_review(self, actor: User, review_id: int) -> None:
        review = await self.session.get(Review, review_id)
        if review is None:
            raise NotFoundError("Review not found")
        if review.user_id != actor.id and not actor.is_admin:
            raise PermissionDeniedError("Not authorized to delete this review")

        book_id = review.book_id
        await self.session.delete(review)
        await self.session.commit()
        logger.info("review_deleted", review_id=review_id, book_id=book_id, actor_id=actor.id)

        await run_best_effort("rating_recompute", ratings.recompute_detached, book_id)


def get_catalog_service(
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    recorder: ActivityRecorder = Depends(get_activity_recorder),
) -> CatalogService:
    return CatalogService(db, recorder, background_tasks)
