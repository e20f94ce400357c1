"""Library configuration using Pydantic Settings.

Configuration is loaded from environment variables.

Optionally, you may point `ENV_FILE` at a local env file (for development).
Leave it unset in deployed environments so the process environment is the
single source of truth.
"""

import os
from enum import Enum

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.engine import make_url

# Query parameters that configure the SQLAlchemy engine/pool and must not be
# forwarded to the DBAPI connect() call.
_ENGINE_ONLY_QUERY_PARAMS = frozenset(
    {"pool_size", "max_overflow", "pool_timeout", "pool_recycle", "pool_pre_ping", "echo"}
)


class AppEnvironment(str, Enum):
    """Application environment values."""

    LOCAL = "local"
    TEST = "test"
    PROD = "prod"


class Settings(BaseSettings):
    """
    Pagination settings with type validation.

    Configuration is loaded from environment variables, with support
    for .env files in development.
    """

    model_config = SettingsConfigDict(
        env_file=os.getenv("ENV_FILE") or None, env_prefix="", extra="ignore"
    )

    # Application
    app_env: AppEnvironment = AppEnvironment.LOCAL
    app_name: str = "relay-pagination"
    app_log_level: str = "INFO"

    # Observability
    observability_structured_logs: bool = True

    # Database - only needed when callers rely on the default sessionmaker
    database_url_app: str | None = None

    # Pagination
    pagination_max_page_size: int = 500

    # Upper bound on an incoming cursor token, checked before decoding
    cursor_max_length: int = 4096

    @field_validator("app_env", mode="before")
    @classmethod
    def validate_app_env(cls, v: str | AppEnvironment) -> AppEnvironment:
        """Validate and parse app_env to AppEnvironment enum."""
        if isinstance(v, AppEnvironment):
            return v
        try:
            return AppEnvironment(v.lower())
        except ValueError:
            raise ValueError(
                f"app_env must be one of {[e.value for e in AppEnvironment]}, got '{v}'"
            )

    @field_validator("app_log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.strip().upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"app_log_level must be a standard logging level, got '{v}'")
        return level

    @model_validator(mode="after")
    def validate_pagination_limits(self) -> "Settings":
        """Page size bounds must be positive and consistent."""
        if self.pagination_max_page_size < 1:
            raise ValueError("PAGINATION_MAX_PAGE_SIZE must be at least 1")
        if self.cursor_max_length < 16:
            raise ValueError("CURSOR_MAX_LENGTH must be at least 16")
        return self

    @property
    def async_url(self) -> str | None:
        """DATABASE_URL_APP rewritten for the asyncpg driver.

        Engine-only options (pool sizing etc.) are dropped from the query string
        so they are not passed through to asyncpg.connect(). URLs for other
        backends (e.g. sqlite+aiosqlite) are returned with the same cleanup but
        an unchanged scheme.
        """
        if not self.database_url_app:
            return None

        url = make_url(self.database_url_app).difference_update_query(_ENGINE_ONLY_QUERY_PARAMS)
        if url.get_backend_name() in ("postgres", "postgresql"):
            url = url.set(drivername="postgresql+asyncpg")
        return url.render_as_string(hide_password=False)


settings = Settings()
