"""Application configuration for the compliance service."""
from __future__ import annotations

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_COMPLIANCE_OPTION = "20% at 50% AMI, 55% at 80% AMI"


class Settings(BaseSettings):
    """Runtime configuration."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    app_env: str = Field(default="development")
    log_level: str = Field(default="INFO")
    cors_allow_origins: list[str] = Field(default_factory=lambda: ["*"])

    database_url: str = Field(default="sqlite+aiosqlite:///./compliance.db")
    database_echo: bool = Field(default=False)

    hud_api_key: str = Field(default="")
    hud_api_base_url: str = Field(default="https://www.huduser.gov/hudapi/public")
    hud_timeout_seconds: float = Field(default=10.0, gt=0)
    hud_cache_ttl_seconds: float = Field(default=86_400.0, gt=0)
    hud_default_year: int | None = Field(default=None)

    finalize_timeout_seconds: float = Field(default=60.0, gt=0)
    finalize_lock_timeout_seconds: float = Field(default=30.0, gt=0)

    default_compliance_option: str = Field(default=DEFAULT_COMPLIANCE_OPTION)

    @field_validator("cors_allow_origins", mode="before")
    @classmethod
    def _split_origins(cls, value: object) -> object:
        """Allow comma-separated env values for CORS origins."""

        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return value

    @field_validator("database_url", mode="before")
    @classmethod
    def _async_driver(cls, value: object) -> object:
        """Point plain Postgres/SQLite URLs at their async drivers."""

        if not isinstance(value, str):
            return value
        if value.startswith("postgres://"):
            value = value.replace("postgres://", "postgresql://", 1)
        if value.startswith("postgresql://"):
            return value.replace("postgresql://", "postgresql+asyncpg://", 1)
        if value.startswith("sqlite://"):
            return value.replace("sqlite://", "sqlite+aiosqlite://", 1)
        return value


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance."""

    return Settings()


settings = get_settings()
