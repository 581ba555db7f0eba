"""Review schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ReviewCreate(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    comment: str = Field(..., min_length=5, max_length=5000)


class ReviewResponse(BaseModel):
    id: int
    rating: int
    comment: str
    book_id: int
    user_id: int
    user_name: Optional[str]
    created_at: datetime

    model_config = {"from_attributes": True}


class ReviewPage(BaseModel):
    """Paginated reviews, keyed the way the storefront client reads them."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    reviews: list[ReviewResponse]
    total_pages: int
    current_page: int
    total: int
