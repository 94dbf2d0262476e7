"""Configuration package."""

from ledger_ingest.config.settings import (
    FirebaseSettings,
    GeminiSettings,
    IngestionSettings,
    Settings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "FirebaseSettings",
    "GeminiSettings",
    "IngestionSettings",
    "Settings",
    "get_settings",
    "validate_all_settings",
]
