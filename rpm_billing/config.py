"""Configuration management for the billing engine."""

import json
from functools import lru_cache
from pathlib import Path
from typing import Annotated, Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    """Settings read from RPM_BILLING_* environment variables or .env."""

    model_config = SettingsConfigDict(
        env_prefix="RPM_BILLING_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_url: str = Field(
        default="sqlite+aiosqlite:///./rpm_billing.db",
        description="SQLAlchemy async DSN (postgresql+psycopg://... in production)",
    )

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8080
    api_key: str = Field(default="", description="Shared key required on /api routes when set")
    cors_origins: Annotated[list[str], NoDecode] = Field(default=["http://localhost:3000"])

    # Reports
    report_max_concurrency: int = Field(
        default=8,
        ge=1,
        description="Maximum enrollments evaluated at once per clinic report",
    )
    default_timezone: str = Field(
        default="UTC",
        description="IANA zone for bucketing transmissions when an enrollment has none",
    )

    # Observability
    observability_enabled: bool = True
    observability_log_dir: Path = Path("./data/logs")

    debug_mode: bool = Field(default=False, description="Expose error details in 500 responses")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    @field_validator("cors_origins", mode="before")
    @classmethod
    def _split_origins(cls, value):
        if isinstance(value, str):
            if value.lstrip().startswith("["):
                return json.loads(value)
            return [origin.strip() for origin in value.split(",") if origin.strip()]
        return value

    @field_validator("default_timezone")
    @classmethod
    def _known_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Unknown timezone {value!r}") from None
        return value

    @property
    def has_api_key(self) -> bool:
        return bool(self.api_key)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
