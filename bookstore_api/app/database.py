"""SQLAlchemy async engine, session, and dependency."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import NullPool

from app.config import get_settings


settings = get_settings()


def _engine_options(dsn: str) -> dict[str, Any]:
    # SQLite (tests, local runs) has no server-side pool to tune
    if dsn.startswith("sqlite"):
        return {"poolclass": NullPool, "echo": settings.database_echo}
    return {
        "pool_size": 20,
        "max_overflow": 10,
        "pool_pre_ping": True,
        "pool_recycle": 300,
        "echo": settings.database_echo,
    }


engine = create_async_engine(settings.database_dsn, **_engine_options(settings.database_dsn))

async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


class Base(DeclarativeBase):
    pass


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
