"""
Feature flag configuration using Pydantic Settings.
"""

from typing import Any
from functools import lru_cache
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_stores() -> dict[str, dict[str, Any]]:
    return {
        "array": {"driver": "array"},
        "database": {"driver": "database"},
    }


class FeatureSettings(BaseSettings):
    """Feature flag configuration."""

    model_config = SettingsConfigDict(
        env_prefix="FEATURE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Stores
    default_store: str = Field(
        default="array",
        description="Store used when none is named",
    )
    stores: dict[str, dict[str, Any]] = Field(
        default_factory=_default_stores,
        description="Store name -> {'driver': 'array' | 'database' | custom, ...}",
    )
    database_url: str = Field(
        default="sqlite:///:memory:",
        description="SQLAlchemy URL for the database driver",
    )
    group_storage: str | None = Field(
        default=None,
        description="Group repository backend: array, database (defaults to the store driver)",
    )

    # Groups defined up front
    groups: dict[str, list[str]] = Field(default_factory=dict)

    # Events
    events_enabled: bool = Field(
        default=True,
        description="Dispatch activation, deactivation and unknown feature events",
    )

    # Logging
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json", description="json or text")

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        allowed = {"json", "text"}
        if v not in allowed:
            raise ValueError(f"log_format must be one of {allowed}")
        return v

    @field_validator("group_storage")
    @classmethod
    def validate_group_storage(cls, v: str | None) -> str | None:
        if v is not None and v not in {"array", "database"}:
            raise ValueError("group_storage must be 'array' or 'database'")
        return v

    def store_config(self, name: str) -> dict[str, Any] | None:
        """Get the configuration block for a store, if any."""
        config = self.stores.get(name)
        return dict(config) if isinstance(config, dict) else None


@lru_cache
def get_settings() -> FeatureSettings:
    """Get cached settings instance."""
    return FeatureSettings()
