"""
Application configuration — loaded from environment variables and `.env`.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # ── Environment ──
    environment: str = "development"

    # ── Postgres ──
    postgres_user: str = "bookstore"
    postgres_password: str = "changeme"
    postgres_db: str = "bookstore"
    postgres_host: str = "postgres"
    postgres_port: int = 5432
    database_url: Optional[str] = None
    database_echo: bool = False

    # ── Redis ──
    redis_host: str = "redis"
    redis_port: int = 6379
    redis_password: str = "changeme"
    redis_url: Optional[str] = None

    # ── JWT ──
    jwt_secret_key: str = "CHANGE_ME"
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60
    refresh_token_expire_days: int = 7

    # ── Rate Limiting ──
    rate_limit_enabled: bool = True
    rate_limit_per_user: int = 120
    rate_limit_per_ip: int = 300
    rate_limit_writes_per_user: int = 30
    rate_limit_window_seconds: int = 60

    # ── Cache ──
    cache_enabled: bool = True
    analytics_cache_ttl_seconds: int = 30

    # ── Image host (Cloudinary-compatible upload API) ──
    image_host_url: str = "https://api.cloudinary.com/v1_1"
    image_host_cloud_name: Optional[str] = None
    image_host_api_key: Optional[str] = None
    image_host_api_secret: Optional[str] = None
    image_host_folder: str = "online-bookstore"
    cover_image_max_bytes: int = 5 * 1024 * 1024

    # ── Monitoring ──
    log_level: str = "INFO"
    log_format: str = "json"

    # ── CORS ──
    cors_origins: str = "http://localhost:5173,http://localhost:3000"

    @property
    def database_dsn(self) -> str:
        if self.database_url:
            return self.database_url
        return (
            f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    @property
    def redis_dsn(self) -> str:
        if self.redis_url:
            return self.redis_url
        return f"redis://:{self.redis_password}@{self.redis_host}:{self.redis_port}/0"

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def image_host_configured(self) -> bool:
        return bool(
            self.image_host_cloud_name
            and self.image_host_api_key
            and self.image_host_api_secret
        )


@lru_cache()
def get_settings() -> Settings:
    return Settings()
