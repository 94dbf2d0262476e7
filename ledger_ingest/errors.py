"""
Ingestion error taxonomy.

Every failure inside a pipeline run is converted into one of these before
it is recorded on the raw file. The ``kind`` string is stable and is what
lands in outcomes and audit events.
"""

from typing import Any, Optional


class IngestionError(Exception):
    """Base exception for all ingestion errors."""

    kind = "ingestion_error"

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class FetchError(IngestionError):
    """Raw bytes could not be retrieved from the blob store."""

    kind = "fetch_error"


class ConfigurationError(IngestionError):
    """The user has no extraction credential configured."""

    kind = "configuration_error"


class ExtractionError(IngestionError):
    """The model call failed, timed out, or returned data failing the schema."""

    kind = "extraction_error"


class MaterializationError(IngestionError):
    """
    Derived documents could not be written.

    When raised after the parent Statement/Receipt was inserted,
    ``parent_id`` names the orphaned parent document.
    """

    kind = "materialization_error"

    def __init__(
        self,
        message: str,
        parent_id: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.parent_id = parent_id


class StatusWriteError(IngestionError):
    """
    Recording a raw file status failed.

    Never handled inside the pipeline; it must reach the trigger host.
    """

    kind = "status_write_error"
