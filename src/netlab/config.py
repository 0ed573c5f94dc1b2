"""Pydantic configuration models for the lab planner.

Uses pydantic-settings for environment variable loading
with validation and type coercion.
"""

from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class NetlabSettings(BaseSettings):
    """Main application settings.

    Settings can be provided via:
    - Environment variables (prefixed with NETLAB_)
    - .env file in project root
    - Direct instantiation
    """

    model_config = SettingsConfigDict(
        env_prefix="NETLAB_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Persistence
    save_file: Path = Field(
        default=Path("network_save.dat"),
        description="Path to the section-tagged save file",
    )

    # Allocator behaviour
    reject_assigned_split: bool = Field(
        default=False,
        description="Refuse to split subnets that already carry an assignment",
    )

    max_children: int = Field(
        default=65536,
        ge=1,
        description="Largest number of blocks a single split may produce",
    )

    # Logging
    log_level: str = Field(
        default="WARNING",
        description="Logging level",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper = v.upper()
        if upper not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return upper


def get_settings() -> NetlabSettings:
    """Get application settings."""
    return NetlabSettings()
