"""
Configuration settings for pgflex.

Uses Pydantic Settings to load environment variables for the database connection,
the target table and its reserved columns, logging, and the CLI batch driver.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Database
    db_host: str = Field("localhost", alias="DB_HOST")
    db_port: int = Field(5432, alias="DB_PORT", ge=1, le=65535)
    db_user: str = Field("postgres", alias="DB_USER")
    db_password: str = Field("postgres", alias="DB_PASSWORD")
    db_name: str = Field("logs", alias="DB_NAME")

    # Target table
    table: str = Field("logs", alias="PGFLEX_TABLE")
    table_schema: Optional[str] = Field(None, alias="PGFLEX_TABLE_SCHEMA")
    time_column: str = Field("time", alias="PGFLEX_TIME_COLUMN")
    extra_column: str = Field("extra", alias="PGFLEX_EXTRA_COLUMN")

    # Application
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_json: bool = Field(False, alias="LOG_JSON")

    # Connection and batch driver
    connect_attempts: int = Field(3, alias="PGFLEX_CONNECT_ATTEMPTS", ge=1)
    batch_size: int = Field(1000, alias="PGFLEX_BATCH_SIZE", ge=1)
    write_attempts: int = Field(3, alias="PGFLEX_WRITE_ATTEMPTS", ge=1)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator("table", "time_column", "extra_column")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be empty")
        return value

    @field_validator("table_schema")
    @classmethod
    def _blank_schema_is_none(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not value.strip():
            return None
        return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Retrieve a cached instance of Settings to avoid repeated env parsing.
    """
    return Settings()


__all__ = ["Settings", "get_settings"]
