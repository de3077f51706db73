"""
HTTP object storage client for EcoReport

Uploads report photos to a Supabase-Storage-compatible REST API and resolves
their permanent public URLs.

API shape:
- POST /storage/v1/object/{bucket}/{path}          upload
- HEAD /storage/v1/object/public/{bucket}/{path}   public read
"""

import logging
from typing import Optional
from urllib.parse import quote

import httpx

from ecoreport.backend.base import ObjectStorage, StorageError
from ecoreport.core.constants import DEFAULT_BUCKET

logger = logging.getLogger(__name__)


class HttpObjectStorage(ObjectStorage):
    """
    Client for one storage bucket.

    Usage:
        async with HttpObjectStorage(url, key) as storage:
            await storage.put("user/1700000000000.jpg", data, "image/jpeg")
            url = await storage.resolve_url("user/1700000000000.jpg")

    Only public URLs are produced. Signed URLs expire and must never be
    stored as a report's image reference.
    """

    OBJECT_PATH = "/storage/v1/object"

    def __init__(
        self,
        base_url: str,
        api_key: str,
        bucket: str = DEFAULT_BUCKET,
        access_token: Optional[str] = None,
        timeout: float = 30.0,
        verify_uploads: bool = True,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """
        Initialize storage client.

        Args:
            base_url: Data service base URL
            api_key: Data service API key
            bucket: Bucket holding report photos
            access_token: Bearer token of the uploading session (defaults to the API key)
            timeout: HTTP request timeout in seconds
            verify_uploads: Check the public URL answers before returning it
            transport: Optional httpx transport (tests)
        """
        if not base_url or not api_key:
            raise ValueError("Storage base URL and API key are required")

        self.base_url = base_url.rstrip("/")
        self.bucket = bucket
        self.verify_uploads = verify_uploads
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            headers={
                "apikey": api_key,
                "Authorization": f"Bearer {access_token or api_key}",
            },
            transport=transport,
        )

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    def _object_url(self, path: str) -> str:
        return f"{self.OBJECT_PATH}/{self.bucket}/{quote(path)}"

    def public_url(self, path: str) -> str:
        """Permanent public URL of an object."""
        return f"{self.base_url}{self.OBJECT_PATH}/public/{self.bucket}/{quote(path)}"

    async def put(self, path: str, data: bytes, content_type: str) -> None:
        logger.info(f"Uploading {len(data)} bytes to {self.bucket}/{path}")
        try:
            response = await self._client.post(
                self._object_url(path),
                content=data,
                headers={"Content-Type": content_type, "x-upsert": "false"},
            )
        except httpx.HTTPError as e:
            logger.error(f"Upload transport error for {path}: {e}")
            raise StorageError(f"Upload failed: {e}") from e

        if response.status_code >= 400:
            message = self._error_message(response)
            logger.error(f"Upload rejected for {path}: {message}")
            raise StorageError(f"Upload failed: {message}")

    async def resolve_url(self, path: str) -> str:
        url = self.public_url(path)
        if not self.verify_uploads:
            return url

        try:
            response = await self._client.head(url)
        except httpx.HTTPError as e:
            raise StorageError(f"Could not verify {path}: {e}") from e

        if response.status_code >= 400:
            raise StorageError(f"Object {path} is not publicly readable (HTTP {response.status_code})")

        return url

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            payload = response.json()
        except ValueError:
            return f"HTTP {response.status_code}"
        if isinstance(payload, dict):
            return str(payload.get("message") or payload.get("error") or f"HTTP {response.status_code}")
        return f"HTTP {response.status_code}"
