"""In-memory blob store for tests and local runs."""

from typing import Optional

from ledger_ingest.services.blob.interface import (
    BlobNotFoundError,
    BlobStoreError,
    BlobStoreInterface,
)


class InMemoryBlobStore(BlobStoreInterface):
    """Dict of path -> bytes. Paths listed in ``failing_paths`` raise on download."""

    def __init__(self):
        self._objects: dict[str, bytes] = {}
        self._content_types: dict[str, Optional[str]] = {}
        self.failing_paths: set[str] = set()

    def __contains__(self, path: str) -> bool:
        return path in self._objects

    async def download(self, path: str) -> bytes:
        if path in self.failing_paths:
            raise BlobStoreError(f"Permission denied for {path}")
        if path not in self._objects:
            raise BlobNotFoundError(f"No object at {path}")
        return self._objects[path]

    async def upload(
        self,
        path: str,
        data: bytes,
        content_type: Optional[str] = None,
    ) -> None:
        self._objects[path] = bytes(data)
        self._content_types[path] = content_type

    async def delete(self, path: str) -> None:
        self._objects.pop(path, None)
        self._content_types.pop(path, None)
