"""User administration routes (admin only)."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from app.auth.dependencies import require_admin
from app.models.user import User
from app.schemas.user import RoleUpdate, UserResponse
from app.services.accounts import AccountService, get_account_service

router = APIRouter(prefix="/users", tags=["Users"])


@router.get("", response_model=list[UserResponse])
async def list_users(
    _admin: User = Depends(require_admin),
    accounts: AccountService = Depends(get_account_service),
):
    return [UserResponse.model_validate(u) for u in await accounts.list_users()]


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: int,
    _admin: User = Depends(require_admin),
    accounts: AccountService = Depends(get_account_service),
):
    return UserResponse.model_validate(await accounts.get_user(user_id))


@router.patch("/{user_id}/role", response_model=UserResponse)
async def update_user_role(
    user_id: int,
    data: RoleUpdate,
    admin: User = Depends(require_admin),
    accounts: AccountService = Depends(get_account_service),
):
    """Change another user's role."""
    user = await accounts.set_role(admin, user_id, data.role)
    return UserResponse.model_validate(user)


@router.patch("/{user_id}/status", response_model=UserResponse)
async def toggle_user_status(
    user_id: int,
    admin: User = Depends(require_admin),
    accounts: AccountService = Depends(get_account_service),
):
    """Activate or deactivate another user's account."""
    user = await accounts.toggle_status(admin, user_id)
    return UserResponse.model_validate(user)
