"""Extraction services package."""

from ledger_ingest.services.extraction.gemini_service import (
    MISSING_API_KEY_MESSAGE,
    ExtractionResult,
    GeminiExtractionService,
    detect_image_mime_type,
    response_schema,
    to_gemini_schema,
    truncate_text,
)

__all__ = [
    "MISSING_API_KEY_MESSAGE",
    "ExtractionResult",
    "GeminiExtractionService",
    "detect_image_mime_type",
    "response_schema",
    "to_gemini_schema",
    "truncate_text",
]
