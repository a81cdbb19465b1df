"""
Byte sources for uploaded CSV snapshots.

A byte source fetches the raw bytes stored under a snapshot's
storage_path. Missing objects raise SnapshotNotFoundError so the loader
can treat them as incomplete uploads; every other failure raises
SnapshotFetchError.
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional, Protocol
from urllib.parse import quote

import httpx

from analytics.errors import SnapshotFetchError, SnapshotNotFoundError
from config import config

logger = logging.getLogger(__name__)


class ByteSource(Protocol):
    """Anything that can fetch snapshot bytes by storage path."""

    async def fetch(self, storage_path: str) -> bytes:
        ...


class HttpByteSource:
    """
    Fetches snapshot CSVs from an HTTP object store.

    Objects are addressed as ``{base_url}/{storage_path}``. A 404 response
    means the object does not exist.
    """

    def __init__(
        self,
        base_url: str,
        auth_token: Optional[str] = None,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        """
        Initialize the HTTP byte source.

        Args:
            base_url: Object store root URL.
            auth_token: Optional bearer token sent with every request.
            timeout: Request timeout in seconds.
            client: Optional pre-built httpx client (used by tests).
        """
        self.base_url = base_url.rstrip("/")
        self.auth_token = auth_token
        self.timeout = timeout
        self._client = client
        logger.info(f"HttpByteSource initialized for {self.base_url}")

    def _url_for(self, storage_path: str) -> str:
        return f"{self.base_url}/{quote(storage_path.lstrip('/'), safe='/')}"

    async def fetch(self, storage_path: str) -> bytes:
        """
        Download the object stored under ``storage_path``.

        Raises:
            SnapshotNotFoundError: On HTTP 404.
            SnapshotFetchError: On any other HTTP or transport error.
        """
        url = self._url_for(storage_path)
        headers = {}
        if self.auth_token:
            headers["Authorization"] = f"Bearer {self.auth_token}"

        logger.debug(f"Fetching snapshot bytes: {url}")

        try:
            if self._client is not None:
                response = await self._client.get(url, headers=headers)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.get(url, headers=headers)
        except httpx.HTTPError as e:
            logger.error(f"Snapshot download failed for {storage_path}: {e}")
            raise SnapshotFetchError(storage_path, f"Failed to download {storage_path}: {e}") from e

        if response.status_code == 404:
            raise SnapshotNotFoundError(storage_path)

        if response.status_code >= 400:
            logger.error(
                f"Object store returned {response.status_code} for {storage_path}: "
                f"{response.text[:200]}"
            )
            raise SnapshotFetchError(
                storage_path,
                f"Object store returned HTTP {response.status_code} for {storage_path}"
            )

        return response.content


class LocalByteSource:
    """Reads snapshot CSVs from a directory (development and scripts)."""

    def __init__(self, root: str) -> None:
        self.root = Path(root).resolve()
        logger.info(f"LocalByteSource initialized at {self.root}")

    def _path_for(self, storage_path: str) -> Path:
        path = (self.root / storage_path.lstrip("/")).resolve()
        if self.root not in path.parents and path != self.root:
            raise SnapshotFetchError(storage_path, f"Storage path escapes root: {storage_path}")
        return path

    async def fetch(self, storage_path: str) -> bytes:
        """
        Read the file stored under ``storage_path``.

        Raises:
            SnapshotNotFoundError: If the file does not exist.
            SnapshotFetchError: On permission or other OS errors.
        """
        path = self._path_for(storage_path)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError as e:
            raise SnapshotNotFoundError(storage_path) from e
        except OSError as e:
            logger.error(f"Failed to read snapshot {path}: {e}")
            raise SnapshotFetchError(storage_path, f"Failed to read {storage_path}: {e}") from e


def build_byte_source() -> ByteSource:
    """Create the byte source selected by STORAGE_BACKEND."""
    if config.storage.backend == "http":
        if not config.storage.base_url:
            raise ValueError("STORAGE_BASE_URL is required for the http storage backend")
        return HttpByteSource(
            base_url=config.storage.base_url,
            auth_token=config.storage.auth_token,
            timeout=config.storage.timeout,
        )
    return LocalByteSource(config.storage.local_root)
