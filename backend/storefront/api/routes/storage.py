"""Storage routes: entitlement-gated item downloads."""

from urllib.parse import quote

import structlog
from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response

from storefront.api.dependencies import get_blob_store, get_entitlement_gate
from storefront.core.auth import bearer_token
from storefront.core.exceptions import NotFoundError
from storefront.services.blob_store import BlobStore
from storefront.services.entitlement_gate import EntitlementGate

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/storage", tags=["storage"])


def _content_disposition(filename: str) -> str:
    safe = filename.replace("\\", "_").replace('"', "_").replace("\r", "").replace("\n", "")
    quoted = quote(safe)
    if quoted == safe:
        return f'attachment; filename="{safe}"'
    # Header values go out as latin-1; non-ASCII names travel in the RFC 5987 form
    fallback = safe.encode("ascii", "replace").decode("ascii").replace("?", "_")
    return f"attachment; filename=\"{fallback}\"; filename*=utf-8''{quoted}"


@router.get("/download")
async def download_item(
    item_id: int = Query(alias="itemId", gt=0),
    token: str | None = Depends(bearer_token),
    gate: EntitlementGate = Depends(get_entitlement_gate),
    blob_store: BlobStore = Depends(get_blob_store),
):
    """Stream a purchased item's file to its owner.

    401 without a valid token, 403 without a purchase, 404 when the item or
    its file is missing.
    """
    location = await gate.authorize_download(token, item_id)
    content = await blob_store.download(location.bucket, location.path)
    if not content:
        logger.warning("download_file_missing", item_id=item_id, bucket=location.bucket, path=location.path)
        raise NotFoundError("File not found.")

    logger.info("download_served", item_id=item_id, bucket=location.bucket, size=len(content))
    return Response(
        content=content,
        media_type="application/octet-stream",
        headers={"Content-Disposition": _content_disposition(location.filename)},
    )
