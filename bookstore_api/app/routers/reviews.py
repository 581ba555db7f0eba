"""Review routes addressed by review id."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from app.auth.dependencies import get_current_user
from app.models.user import User
from app.services.catalog import CatalogService, get_catalog_service

router = APIRouter(prefix="/reviews", tags=["Reviews"])


@router.delete("/{review_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_review(
    review_id: int,
    current_user: User = Depends(get_current_user),
    catalog: CatalogService = Depends(get_catalog_service),
):
    """Delete a review (its author or an admin); the book's rating is recomputed."""
    await catalog.delete_review(current_user, review_id)
