"""Configuration management for Clinic OS."""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_url: str = Field(
        default="sqlite+aiosqlite:///./clinic_os.db",
        description="SQLAlchemy async DSN for the clinic database",
    )

    # API Settings
    api_host: str = Field(default="0.0.0.0")
    api_port: int = Field(default=8080)
    api_key: str = Field(
        default="",
        description="API key for authenticating requests",
    )

    # CORS
    cors_origins: list[str] = Field(
        default=["http://localhost:3000", "http://localhost:5173"],
        description="Allowed CORS origins",
    )

    # Booking rules
    encaixe_override_scope: Literal["appointment", "all"] = Field(
        default="appointment",
        description=(
            "Which conflicts an encaixe (squeeze-in) booking may override: "
            "'appointment' only overlaps, or 'all' conflict types"
        ),
    )
    suggestion_count: int = Field(
        default=5,
        ge=0,
        description="Maximum number of alternative times returned with a conflict",
    )
    slot_minutes: int = Field(
        default=30,
        ge=5,
        description="Slot width used for suggestions and the partner day view",
    )

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")

    @property
    def has_api_key(self) -> bool:
        """Check if API key auth is configured."""
        return bool(self.api_key)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
