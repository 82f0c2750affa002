"""
Application configuration using Pydantic Settings.
"""

from functools import lru_cache
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class FeatureSettings(BaseSettings):
    """Feature flag configuration."""

    model_config = SettingsConfigDict(env_prefix="FEATURE_")

    default_enabled: bool = Field(
        default=False,
        description="Result for a flag configured with no filters",
    )

    # Request headers used to build the evaluation context
    language_header: str = Field(
        default="Accept-Language",
        description="Header read by the language filter",
    )
    user_header: str = Field(
        default="X-User-Id",
        description="Header carrying the user id when no authenticated user is available",
    )
    groups_header: str = Field(
        default="X-User-Groups",
        description="Comma-separated group memberships",
    )
    session_header: str = Field(
        default="X-Session-Id",
        description="Stable session id used for sticky percentage rollouts",
    )


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    environment: str = Field(default="development")

    # Logging
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json", description="json or text")

    # Nested settings
    features: FeatureSettings = Field(default_factory=FeatureSettings)

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        allowed = {"development", "staging", "production", "testing"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        if v not in {"json", "text"}:
            raise ValueError("log_format must be 'json' or 'text'")
        return v


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
