"""Application configuration objects."""
from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Pydantic settings used to configure the service and its clients."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    app_name: str = Field(
        default="Stock Service",
        description="Human friendly name for the API.",
    )
    environment: Literal["development", "staging", "production", "test"] = Field(
        default="development",
        description="Deployment environment flag used for logging.",
    )
    database_url: str = Field(
        default="sqlite+aiosqlite:///./stock.db",
        description="SQLAlchemy compatible database URL.",
    )
    echo_sql: bool = Field(
        default=False,
        description="Enable SQL echo logging for debugging.",
    )
    access_control_allow_origin: str = Field(
        default="*",
        description="Comma separated CORS origins for the API.",
    )
    max_body_bytes: int = Field(
        default=10 * 1024 * 1024,
        ge=0,
        description="Largest accepted request body; inline images count against it.",
    )
    log_level: str = Field(default="INFO")

    api_base_url: str = Field(
        default="http://localhost:8000",
        description="Base URL used by ItemsClient.",
    )
    request_timeout: float = Field(
        default=10.0,
        gt=0,
        description="Seconds before an API request is treated as a transport failure.",
    )
    max_save_attempts: int = Field(default=3, ge=1)
    retry_delay: float = Field(
        default=0.5,
        ge=0,
        description="Pause between a version conflict and the next write attempt.",
    )
    alert_poll_interval: float = Field(default=30.0, gt=0)
    history_path: str = Field(
        default="./stock-history.jsonl",
        description="Local change-history ledger file.",
    )

    @field_validator("database_url")
    @classmethod
    def _validate_sqlite_path(cls, value: str) -> str:
        if value.startswith("sqlite") and ":memory:" not in value and "///" not in value:
            raise ValueError(
                "SQLite database URLs should be in the form sqlite+aiosqlite:///path/to/db"
            )
        return value

    @property
    def cors_origins(self) -> list[str]:
        return [origin.strip() for origin in self.access_control_allow_origin.split(",") if origin.strip()]


@lru_cache
def get_settings() -> Settings:
    """Return a cached instance of :class:`Settings`."""

    return Settings()


__all__ = ["Settings", "get_settings"]
