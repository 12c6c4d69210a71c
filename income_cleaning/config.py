"""
Configuration management for the household income cleaning pipeline.

Uses pydantic-settings for type-safe configuration with environment variable support.
"""

from datetime import timedelta
from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """Database connection settings."""

    model_config = SettingsConfigDict(
        env_prefix="DATABASE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    url: str = "sqlite:///./data/household_income.db"
    echo: bool = False


class CleaningSettings(BaseSettings):
    """Cleaning pipeline, scheduler and hook settings."""

    model_config = SettingsConfigDict(
        env_prefix="CLEANING_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Tables
    raw_table: str = "us_household_income"
    cleaned_table: str = "us_household_income_cleaned"

    # Scheduling
    interval_days: float = 30
    catch_up: bool = True
    poll_seconds: float = 60

    # Execution
    run_timeout_seconds: float = 600  # 0 = no budget
    batch_size: int = 1000

    # Insertion hook
    hook_mode: Literal["full", "incremental"] = "full"
    hook_blocking: bool = False

    # Extra typo corrections (JSON: {"Type": {"bad": "good"}, ...})
    corrections_file: Optional[Path] = None

    # Logging
    log_level: str = "INFO"
    log_file: Optional[Path] = None
    log_rotation: str = "10 MB"
    log_retention: str = "1 week"

    @field_validator("interval_days", "poll_seconds")
    @classmethod
    def positive(cls, v):
        """Intervals must be strictly positive."""
        if v <= 0:
            raise ValueError("must be greater than zero")
        return v

    @property
    def interval(self) -> timedelta:
        return timedelta(days=self.interval_days)


class Settings(BaseSettings):
    """Main settings class that combines all settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    cleaning: CleaningSettings = Field(default_factory=CleaningSettings)


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()


# Convenience alias for quick access
settings = get_settings()
