"""Book schemas."""

from __future__ import annotations

import json
from datetime import date, datetime
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator


def _parse_tags(value: Any) -> Any:
    """Accept a list, a JSON array string or a comma-separated string."""
    if value is None or isinstance(value, list):
        return value
    if isinstance(value, str):
        try:
            parsed = json.loads(value)
        except ValueError:
            return [part.strip() for part in value.split(",") if part.strip()]
        if isinstance(parsed, list):
            return parsed
        return [str(parsed)]
    return value


class BookCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=500)
    description: str = Field(..., min_length=10)
    author: str = Field(..., min_length=1, max_length=255)
    price: float = Field(..., ge=0)
    category: str = Field(..., min_length=1, max_length=100)
    isbn: str = Field(..., min_length=10, max_length=20)
    published_date: Optional[date] = None
    language: str = Field("English", min_length=1, max_length=50)
    page_count: Optional[int] = Field(None, ge=1)
    tags: list[str] = Field(default_factory=list)
    cover_image_url: Optional[str] = Field(None, max_length=1000)

    @field_validator("tags", mode="before")
    @classmethod
    def split_tags(cls, value: Any) -> Any:
        return _parse_tags(value)


class BookUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=500)
    description: Optional[str] = Field(None, min_length=10)
    author: Optional[str] = Field(None, min_length=1, max_length=255)
    price: Optional[float] = Field(None, ge=0)
    category: Optional[str] = Field(None, min_length=1, max_length=100)
    isbn: Optional[str] = Field(None, min_length=10, max_length=20)
    published_date: Optional[date] = None
    language: Optional[str] = Field(None, min_length=1, max_length=50)
    page_count: Optional[int] = Field(None, ge=1)
    tags: Optional[list[str]] = None
    cover_image_url: Optional[str] = Field(None, max_length=1000)

    @field_validator("tags", mode="before")
    @classmethod
    def split_tags(cls, value: Any) -> Any:
        return _parse_tags(value)


class BookResponse(BaseModel):
    id: int
    title: str
    description: str
    author: str
    price: float
    category: str
    isbn: str
    published_date: Optional[date]
    language: str
    page_count: Optional[int]
    tags: list[str]
    cover_image_url: Optional[str]
    owner_id: int
    owner_name: Optional[str]
    average_rating: float
    review_count: int
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class BookListResponse(BaseModel):
    books: list[BookResponse]
    total: int
    page: int
    page_size: int
    total_pages: int
