"""
Configuration Management for Ledger Ingest

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
This makes it easy to see what external dependencies exist and
ensures all required configuration is validated at startup.

Note that the Gemini API key is NOT configured here. Keys belong to
users and are read from their profile document on every pipeline run.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class FirebaseSettings(BaseSettings):
    """Firestore and Cloud Storage configuration."""

    model_config = SettingsConfigDict(
        env_prefix="FIREBASE_",
        extra="ignore"
    )

    project_id: Optional[str] = Field(
        default=None,
        description="GCP project id (falls back to the environment default)"
    )
    credentials_path: Optional[str] = Field(
        default=None,
        description="Path to a service account JSON; application default credentials when unset"
    )
    storage_bucket: str = Field(
        ...,
        description="Cloud Storage bucket holding uploaded files"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: Optional[str]) -> Optional[str]:
        """Warn if credentials file doesn't exist (but don't fail - might be mounted later)."""
        if v and not Path(v).exists():
            import warnings
            warnings.warn(
                f"Firebase credentials file not found at {v}. "
                "Make sure it exists before running the pipeline."
            )
        return v


class GeminiSettings(BaseSettings):
    """Gemini extraction model configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GEMINI_",
        extra="ignore"
    )

    model_name: str = Field(
        default="gemini-2.0-flash",
        description="Gemini model to use for extraction"
    )
    max_output_tokens: int = Field(
        default=8192,
        ge=256,
        le=65536,
        description="Maximum tokens in response"
    )
    temperature: float = Field(
        default=0.1,
        ge=0.0,
        le=1.0,
        description="Model temperature (lower = more deterministic)"
    )
    request_timeout_seconds: float = Field(
        default=120.0,
        gt=0,
        description="Deadline for a single extraction call, retries included"
    )
    max_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts per extraction call on transient API errors"
    )


class IngestionSettings(BaseSettings):
    """
    Pipeline behaviour.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_prefix="INGESTION_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    max_text_chars: int = Field(
        default=50_000,
        ge=1,
        description="Character budget for text content sent to the model"
    )
    atomic_materialization: bool = Field(
        default=False,
        description="Commit parent and child documents in one batch"
    )
    stale_processing_minutes: int = Field(
        default=30,
        ge=1,
        description="Minutes after which a 'processing' file counts as crashed"
    )
    persist_audit_events: bool = Field(
        default=True,
        description="Write audit events to the user's auditEvents collection"
    )


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Note: These are loaded lazily to allow partial configuration

    @property
    def firebase(self) -> FirebaseSettings:
        return FirebaseSettings()

    @property
    def gemini(self) -> GeminiSettings:
        return GeminiSettings()

    @property
    def ingestion(self) -> IngestionSettings:
        return IngestionSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}.
    Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    for name in ("firebase", "gemini", "ingestion"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
