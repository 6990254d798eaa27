"""
Configuration settings for erpstore.

Uses Pydantic Settings to load environment variables (or a ``.env`` file) for
the backing store, the connection pool, decoding leniency and logging.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Backing store
    db_backend: Literal["sqlite", "postgres"] = Field("sqlite", alias="DB_BACKEND")
    sqlite_path: str = Field("erp.db", alias="SQLITE_PATH")
    db_host: str = Field("localhost", alias="DB_HOST")
    db_port: int = Field(5432, alias="DB_PORT")
    db_user: str = Field("postgres", alias="DB_USER")
    db_password: str = Field("postgres", alias="DB_PASSWORD")
    db_name: str = Field("erp", alias="DB_NAME")
    db_connect_timeout_seconds: int = Field(10, alias="DB_CONNECT_TIMEOUT_SECONDS")
    connect_retries: int = Field(3, ge=1, alias="CONNECT_RETRIES")

    # Pool
    pool_size: int = Field(10, ge=1, alias="POOL_SIZE")
    pool_min_size: int = Field(1, ge=0, alias="POOL_MIN_SIZE")
    pool_acquire_timeout_seconds: float = Field(5.0, gt=0, alias="POOL_ACQUIRE_TIMEOUT_SECONDS")

    # Record stores
    decode_policy: Literal["best_effort", "fail_fast"] = Field("best_effort", alias="DECODE_POLICY")

    # Application
    app_env: str = Field("development", alias="APP_ENV")
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_json: bool = Field(False, alias="LOG_JSON")

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
