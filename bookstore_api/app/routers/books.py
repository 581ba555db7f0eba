"""Book catalog and review routes — public reads, authenticated writes."""

from __future__ import annotations

from typing import Optional, TypeVar

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.exceptions import RequestValidationError
from pydantic import BaseModel, ValidationError
from starlette.datastructures import UploadFile

from app.auth.dependencies import get_current_user
from app.models.user import User
from app.schemas.book import BookCreate, BookListResponse, BookResponse, BookUpdate
from app.schemas.review import ReviewCreate, ReviewPage, ReviewResponse
from app.services.catalog import BookSort, CatalogService, get_catalog_service, total_pages
from app.services.image_host import CoverUpload, read_cover

router = APIRouter(prefix="/books", tags=["Books"])

COVER_FIELD = "coverImage"

PayloadT = TypeVar("PayloadT", bound=BaseModel)


async def _read_book_payload(
    request: Request, schema: type[PayloadT]
) -> tuple[PayloadT, Optional[CoverUpload]]:
    """Parse a book body sent as JSON or as multipart form data.

    Multipart bodies may carry the cover as a ``coverImage`` file part.
    """
    cover = None
    if request.headers.get("content-type", "").startswith("multipart/form-data"):
        form = await request.form()
        fields = {}
        for key in form.keys():
            values = form.getlist(key)
            if key == COVER_FIELD:
                upload = values[0]
                if isinstance(upload, UploadFile) and upload.filename:
                    cover = upload
                continue
            values = [v for v in values if isinstance(v, str) and v != ""]
            if values:
                fields[key] = values if key == "tags" and len(values) > 1 else values[0]
    else:
        try:
            fields = await request.json()
        except ValueError:
            raise RequestValidationError(
                [{"type": "json_invalid", "loc": ("body",), "msg": "Invalid JSON body", "input": None}]
            )

    try:
        payload = schema.model_validate(fields)
    except ValidationError as exc:
        raise RequestValidationError(
            [{**error, "loc": ("body", *error["loc"])} for error in exc.errors(include_url=False)]
        )

    if cover is not None:
        return payload, await read_cover(cover)
    return payload, None


async def book_create_payload(request: Request) -> tuple[BookCreate, Optional[CoverUpload]]:
    return await _read_book_payload(request, BookCreate)


async def book_update_payload(request: Request) -> tuple[BookUpdate, Optional[CoverUpload]]:
    return await _read_book_payload(request, BookUpdate)


@router.get("", response_model=BookListResponse)
async def list_books(
    page: int = Query(1, ge=1),
    limit: int = Query(12, ge=1, le=100),
    search: Optional[str] = Query(None, description="Matches title, author or ISBN"),
    category: Optional[str] = None,
    min_price: Optional[float] = Query(None, ge=0),
    max_price: Optional[float] = Query(None, ge=0),
    tag: Optional[str] = None,
    sort: BookSort = "newest",
    catalog: CatalogService = Depends(get_catalog_service),
):
    """Paginated book listing with search, filters and sorting."""
    books, total = await catalog.list_books(
        search=search,
        category=category,
        min_price=min_price,
        max_price=max_price,
        tag=tag,
        sort=sort,
        page=page,
        limit=limit,
    )
    return BookListResponse(
        books=[BookResponse.model_validate(b) for b in books],
        total=total,
        page=page,
        page_size=limit,
        total_pages=total_pages(total, limit),
    )


@router.get("/mine", response_model=list[BookResponse])
async def list_my_books(
    current_user: User = Depends(get_current_user),
    catalog: CatalogService = Depends(get_catalog_service),
):
    books = await catalog.list_owned_books(current_user)
    return [BookResponse.model_validate(b) for b in books]


@router.get("/{book_id}", response_model=BookResponse)
async def get_book(book_id: int, catalog: CatalogService = Depends(get_catalog_service)):
    return BookResponse.model_validate(await catalog.get_book(book_id))


@router.post("", response_model=BookResponse, status_code=status.HTTP_201_CREATED)
async def create_book(
    current_user: User = Depends(get_current_user),
    payload: tuple[BookCreate, Optional[CoverUpload]] = Depends(book_create_payload),
    catalog: CatalogService = Depends(get_catalog_service),
):
    """Create a book. Accepts JSON, or multipart form data with a ``coverImage`` file."""
    data, cover = payload
    book = await catalog.create_book(current_user, data, cover)
    return BookResponse.model_validate(book)


@router.patch("/{book_id}", response_model=BookResponse)
async def update_book(
    book_id: int,
    current_user: User = Depends(get_current_user),
    payload: tuple[BookUpdate, Optional[CoverUpload]] = Depends(book_update_payload),
    catalog: CatalogService = Depends(get_catalog_service),
):
    """Update a book (owner or admin); multipart bodies may replace the cover."""
    data, cover = payload
    book = await catalog.update_book(current_user, book_id, data, cover)
    return BookResponse.model_validate(book)


@router.delete("/{book_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_book(
    book_id: int,
    current_user: User = Depends(get_current_user),
    catalog: CatalogService = Depends(get_catalog_service),
):
    """Delete a book and its reviews (owner or admin)."""
    await catalog.delete_book(current_user, book_id)


@router.get("/{book_id}/reviews", response_model=ReviewPage)
async def list_reviews(
    book_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    catalog: CatalogService = Depends(get_catalog_service),
):
    reviews, total = await catalog.list_reviews(book_id, page=page, limit=limit)
    return ReviewPage(
        reviews=[ReviewResponse.model_validate(r) for r in reviews],
        total_pages=total_pages(total, limit),
        current_page=page,
        total=total,
    )


@router.post(
    "/{book_id}/reviews",
    response_model=ReviewResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_review(
    book_id: int,
    data: ReviewCreate,
    current_user: User = Depends(get_current_user),
    catalog: CatalogService = Depends(get_catalog_service),
):
    """Review a book; one review per user and book."""
    review = await catalog.add_review(current_user, book_id, data.rating, data.comment)
    return ReviewResponse.model_validate(review)
