"""Authenticated downloads from Supabase Storage."""

from typing import Protocol, runtime_checkable
from urllib.parse import quote

import httpx
import structlog

from storefront.core.exceptions import BlobStoreUnavailableError
from storefront.integrations.supabase import SupabaseClient

logger = structlog.get_logger(__name__)


@runtime_checkable
class BlobStore(Protocol):
    async def download(self, bucket: str, path: str) -> bytes | None:
        """Object bytes, or None if the object does not exist."""
        ...


class SupabaseBlobStore:
    def __init__(self, client: SupabaseClient):
        self.client = client

    @staticmethod
    def object_url(bucket: str, path: str) -> str:
        return f"/storage/v1/object/authenticated/{quote(bucket)}/{quote(path.lstrip('/'))}"

    async def download(self, bucket: str, path: str) -> bytes | None:
        if not path or not path.strip():
            return None
        try:
            response = await self.client.request("GET", self.object_url(bucket, path))
        except httpx.HTTPError as exc:
            logger.warning("storage_download_failed", bucket=bucket, path=path, error=str(exc))
            raise BlobStoreUnavailableError(f"Failed to download {bucket}/{path}") from exc

        # Storage answers 400 "Object not found" as well as 404 for missing keys
        if response.status_code in (400, 404):
            logger.info("storage_object_missing", bucket=bucket, path=path, status_code=response.status_code)
            return None
        if not response.is_success:
            logger.warning("storage_download_rejected", bucket=bucket, path=path, status_code=response.status_code)
            raise BlobStoreUnavailableError(f"Storage answered {response.status_code} for {bucket}/{path}")
        return response.content
