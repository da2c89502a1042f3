from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables.

    The variable names follow the deployments that predate the Python service
    (``JWT_SECRET``, ``ADMIN_ACCESS_CODE``, the ``token`` cookie) so both stacks
    can share one environment file during the cut-over.
    """

    app_name: str = "eventdesk"
    environment: str = "development"
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    jwt_secret: str = Field(validation_alias=AliasChoices("JWT_SECRET", "SESSION_SECRET"))
    database_host: str | None = Field(default=None, validation_alias="DB_HOST")
    database_user: str | None = Field(default=None, validation_alias="DB_USER")
    database_password: str | None = Field(default=None, validation_alias="DB_PASSWORD")
    database_name: str | None = Field(default=None, validation_alias="DB_NAME")
    sqlite_path: Path | None = Field(default=None, validation_alias="SQLITE_PATH")
    migration_lock_timeout: int = Field(
        default=60, validation_alias="MIGRATION_LOCK_TIMEOUT"
    )
    session_cookie_name: str = Field(
        default="token",
        validation_alias=AliasChoices("SESSION_COOKIE_NAME", "SESSION_COOKIE"),
    )
    session_ttl_days: int = Field(default=7, validation_alias="SESSION_TTL_DAYS")
    admin_access_code: str | None = Field(default=None, validation_alias="ADMIN_ACCESS_CODE")
    default_timezone: str = Field(
        default="UTC",
        validation_alias=AliasChoices("DEFAULT_TIMEZONE", "CRON_TIMEZONE"),
    )
    auth_log_path: Path | None = Field(
        default=None,
        validation_alias=AliasChoices("AUTH_LOG_PATH", "FAIL2BAN_LOG_PATH"),
    )

    @field_validator(
        "database_host",
        "database_user",
        "database_name",
        "admin_access_code",
        "sqlite_path",
        "auth_log_path",
        mode="before",
    )
    @classmethod
    def _empty_string_to_none(cls, value):  # type: ignore[override]
        """Coerce blank environment variables to ``None`` so optional values stay optional."""

        if isinstance(value, str) and value.strip() == "":
            return None
        return value

    model_config = SettingsConfigDict(
        env_file=(Path(__file__).resolve().parent.parent.parent / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()
