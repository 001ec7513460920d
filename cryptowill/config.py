"""
Configuration settings for CryptoWill.

Uses Pydantic Settings to load environment variables for the record store
backend, the local encryption authority, logging and view defaults.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Application
    app_env: str = Field("development", alias="APP_ENV")
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_json: bool = Field(False, alias="LOG_JSON")

    # Record store
    store_backend: Literal["memory", "postgres"] = Field("memory", alias="STORE_BACKEND")
    store_context: str = Field(
        "0x0000000000000000000000000000000000c0ffee", alias="STORE_CONTEXT"
    )
    db_host: str = Field("localhost", alias="DB_HOST")
    db_port: int = Field(5432, alias="DB_PORT")
    db_user: str = Field("postgres", alias="DB_USER")
    db_password: str = Field("postgres", alias="DB_PASSWORD")
    db_name: str = Field("cryptowill", alias="DB_NAME")

    # Acting account used by the CLI when --identity is not given
    identity: Optional[str] = Field(None, alias="WILL_IDENTITY")

    # Local encryption binder / verification authority
    authority_secret: str = Field("insecure-development-secret", alias="AUTHORITY_SECRET")

    # Controller
    refresh_concurrency: int = Field(8, alias="REFRESH_CONCURRENCY", ge=1)
    record_id_prefix: str = Field("will-", alias="RECORD_ID_PREFIX")

    # Views
    page_size: int = Field(5, alias="PAGE_SIZE", ge=1)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Retrieve a cached instance of Settings to avoid repeated env parsing.
    """
    return Settings()


__all__ = ["Settings", "get_settings"]
