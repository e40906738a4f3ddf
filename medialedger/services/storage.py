"""
Storage deleters - remove generated media blobs by key.

RetentionManager only needs remove(blob_key). A blob that is already gone
reports NOT_FOUND, which callers treat as success. Failures that may succeed
on a later attempt raise TransientStorageError.
"""

import asyncio
from enum import Enum
from pathlib import Path
from typing import Protocol
from urllib.parse import quote

import httpx
from structlog import get_logger

from medialedger.config import Settings
from medialedger.exceptions import TransientStorageError

logger = get_logger(__name__)


class RemovalOutcome(str, Enum):
    """Result of a blob removal."""

    DELETED = "deleted"
    NOT_FOUND = "not_found"


class StorageDeleter(Protocol):
    """Anything that can delete a blob by key."""

    async def remove(self, blob_key: str) -> RemovalOutcome: ...


class FilesystemStorageDeleter:
    """Blobs stored as files under a root directory."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root).resolve()

    def _path_for(self, blob_key: str) -> Path:
        path = (self.root / blob_key).resolve()
        if not path.is_relative_to(self.root):
            raise ValueError(f"Blob key escapes storage root: {blob_key}")
        return path

    def _unlink(self, path: Path) -> RemovalOutcome:
        try:
            path.unlink()
        except FileNotFoundError:
            return RemovalOutcome.NOT_FOUND
        return RemovalOutcome.DELETED

    async def remove(self, blob_key: str) -> RemovalOutcome:
        path = self._path_for(blob_key)
        try:
            return await asyncio.to_thread(self._unlink, path)
        except OSError as exc:
            raise TransientStorageError(blob_key, str(exc)) from exc


class HttpStorageDeleter:
    """
    Blobs held by an object storage HTTP API.

    Issues DELETE {base_url}/{blob_key}. 404 is NOT_FOUND, 5xx and network
    failures are transient, any other error status is raised as-is.
    """

    def __init__(
        self,
        base_url: str,
        token: str = "",
        timeout: float = 10.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self._http_client = http_client

    @property
    def http_client(self) -> httpx.AsyncClient:
        """Get HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.timeout)
        return self._http_client

    async def remove(self, blob_key: str) -> RemovalOutcome:
        url = f"{self.base_url}/{quote(blob_key.lstrip('/'))}"
        headers = {"Authorization": f"Bearer {self.token}"} if self.token else {}

        try:
            response = await self.http_client.delete(url, headers=headers)
        except httpx.TransportError as exc:
            logger.warning("storage_delete_network_error", blob_key=blob_key, error=str(exc))
            raise TransientStorageError(blob_key, str(exc)) from exc

        if response.status_code == 404:
            return RemovalOutcome.NOT_FOUND
        if response.status_code >= 500:
            raise TransientStorageError(blob_key, f"HTTP {response.status_code}")
        response.raise_for_status()
        return RemovalOutcome.DELETED

    async def aclose(self) -> None:
        if self._http_client is not None:
            await self._http_client.aclose()


def create_storage_deleter(settings: Settings) -> FilesystemStorageDeleter | HttpStorageDeleter:
    """Build the deleter selected by STORAGE_BACKEND."""
    if settings.storage_backend == "http":
        return HttpStorageDeleter(
            base_url=settings.storage_api_url,
            token=settings.storage_api_token,
            timeout=settings.storage_timeout_seconds,
        )
    return FilesystemStorageDeleter(settings.storage_root)
