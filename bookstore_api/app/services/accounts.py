"""Account service — registration, credentials, profile and admin user management."""

from __future__ import annotations

import structlog
from fastapi import BackgroundTasks, Depends
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.password import hash_password, verify_password
from app.database import get_db
from app.errors import (
    BookstoreError,
    ConflictError,
    InvalidOperationError,
    NotFoundError,
)
from app.models.inventory import ActivityType
from app.models.user import User, UserRole
from app.schemas.user import ProfileUpdate, UserRegister
from app.services.activity import ActivityRecorder, get_activity_recorder
from app.services.side_effects import schedule

logger = structlog.get_logger()


class InvalidCredentialsError(BookstoreError):
    status_code = 401


class AccountDisabledError(BookstoreError):
    status_code = 403


class AccountService:
    def __init__(
        self,
        session: AsyncSession,
        recorder: ActivityRecorder,
        background_tasks: BackgroundTasks,
    ):
        self.session = session
        self.recorder = recorder
        self.background_tasks = background_tasks

    async def _email_taken(self, email: str) -> bool:
        result = await self.session.execute(select(User.id).where(User.email == email))
        return result.scalar_one_or_none() is not None

    async def _commit_unique(self) -> None:
        try:
            await self.session.commit()
        except IntegrityError:
            # Unique email index: a concurrent registration got there first
            await self.session.rollback()
            raise ConflictError("Email already registered")

    async def register(self, data: UserRegister) -> User:
        email = data.email.lower()
        if await self._email_taken(email):
            raise ConflictError("Email already registered")

        user = User(
            name=data.name,
            email=email,
            hashed_password=hash_password(data.password),
            role=UserRole.USER,
        )
        self.session.add(user)
        await self._commit_unique()
        logger.info("user_registered", user_id=user.id)

        schedule(
            self.background_tasks,
            "activity_signup",
            self.recorder.record,
            ActivityType.SIGNUP,
            user_id=user.id,
            deltas={"new_users_this_week": 1},
        )
        return user

    async def authenticate(self, email: str, password: str) -> User:
        result = await self.session.execute(select(User).where(User.email == email.lower()))
        user = result.scalar_one_or_none()

        if user is None or not verify_password(password, user.hashed_password):
            raise InvalidCredentialsError("Invalid credentials")
        if not user.is_active:
            raise AccountDisabledError("Account is deactivated")

        logger.info("user_login", user_id=user.id)
        return user

    async def update_profile(self, user: User, data: ProfileUpdate) -> User:
        if data.email is not None:
            email = data.email.lower()
            if email != user.email and await self._email_taken(email):
                raise ConflictError("Email already registered")
            user.email = email
        if data.name is not None:
            user.name = data.name
        if data.password is not None:
            user.hashed_password = hash_password(data.password)

        await self._commit_unique()
        return user

    # ── Admin ──

    async def list_users(self) -> list[User]:
        result = await self.session.execute(select(User).order_by(User.created_at.desc(), User.id.desc()))
        return list(result.scalars().all())

    async def get_user(self, user_id: int) -> User:
        user = await self.session.get(User, user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    async def set_role(self, actor: User, user_id: int, role: str) -> User:
        if user_id == actor.id:
            raise InvalidOperationError("You cannot change your own role")
        user = await self.get_user(user_id)
        user.role = UserRole(role)
        await self.session.commit()
        logger.info("user_role_changed", user_id=user_id, role=role, actor_id=actor.id)
        return user

    async def toggle_status(self, actor: User, user_id: int) -> User:
        if user_id == actor.id:
            raise InvalidOperationError("You cannot deactivate your own account")
        user = await self.get_user(user_id)
        user.is_active = not user.is_active
        await self.session.commit()
        logger.info("user_status_changed", user_id=user_id, is_active=user.is_active, actor_id=actor.id)
        return user


def get_account_service(
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    recorder: ActivityRecorder = Depends(get_activity_recorder),
) -> AccountService:
    return AccountService(db, recorder, background_tasks)
