"""Application configuration loaded from environment variables."""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    supabase_url: str | None = Field(default=None, alias="SUPABASE_URL")
    supabase_anon_key: str | None = Field(default=None, alias="SUPABASE_ANON_KEY")
    supabase_jwt_secret: str | None = Field(default=None, alias="SUPABASE_JWT_SECRET")
    movies_table: str = Field(default="movies", alias="MOVIES_TABLE")
    site_password_rpc: str = Field(default="check_site_password", alias="SITE_PASSWORD_RPC")
    site_title: str = Field(default="James' Movie Database 🍿", alias="SITE_TITLE")
    request_timeout: float = Field(default=10.0, alias="REQUEST_TIMEOUT")
    cookie_secure: bool = Field(default=False, alias="COOKIE_SECURE")

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""

    return Settings()
