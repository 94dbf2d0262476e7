"""
Cloud Storage Blob Implementation

The google-cloud-storage client is synchronous, so every call runs in a
worker thread to keep the event loop free while bytes are in flight.
"""

import asyncio
from typing import Optional

from google.api_core import exceptions as google_exceptions
from google.auth import exceptions as auth_exceptions
from google.cloud import storage
from google.oauth2.service_account import Credentials
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from ledger_ingest.config import FirebaseSettings, get_settings
from ledger_ingest.services.blob.interface import (
    BlobNotFoundError,
    BlobStoreError,
    BlobStoreInterface,
)


_TRANSIENT_ERRORS = (
    google_exceptions.ServiceUnavailable,
    google_exceptions.TooManyRequests,
    google_exceptions.InternalServerError,
)


class CloudStorageBlobStore(BlobStoreInterface):
    """Blob store backed by a single Cloud Storage bucket."""

    def __init__(
        self,
        client: Optional[storage.Client] = None,
        settings: Optional[FirebaseSettings] = None,
    ):
        self._settings = settings or get_settings().firebase
        if client is None:
            credentials = None
            if self._settings.credentials_path:
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path
                )
            client = storage.Client(project=self._settings.project_id, credentials=credentials)
        self._bucket = client.bucket(self._settings.storage_bucket)

    @retry(
        retry=retry_if_exception_type(_TRANSIENT_ERRORS),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        reraise=True,
    )
    def _download_sync(self, path: str) -> bytes:
        return self._bucket.blob(path).download_as_bytes()

    async def download(self, path: str) -> bytes:
        try:
            return await asyncio.to_thread(self._download_sync, path)
        except google_exceptions.NotFound:
            raise BlobNotFoundError(f"No object at {path}")
        except google_exceptions.GoogleAPICallError as e:
            raise BlobStoreError(f"Failed to download {path}: {e}")
        except (auth_exceptions.GoogleAuthError, OSError) as e:
            raise BlobStoreError(f"Failed to download {path}: {str(e) or type(e).__name__}")

    async def upload(
        self,
        path: str,
        data: bytes,
        content_type: Optional[str] = None,
    ) -> None:
        blob = self._bucket.blob(path)
        try:
            await asyncio.to_thread(blob.upload_from_string, data, content_type=content_type)
        except google_exceptions.GoogleAPICallError as e:
            raise BlobStoreError(f"Failed to upload {path}: {e}")

    async def delete(self, path: str) -> None:
        try:
            await asyncio.to_thread(self._bucket.blob(path).delete)
        except google_exceptions.NotFound:
            return
        except google_exceptions.GoogleAPICallError as e:
            raise BlobStoreError(f"Failed to delete {path}: {e}")
