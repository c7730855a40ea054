"""EntitlementGate: the ledger-backed access check in front of every download."""

import structlog

from storefront.core.auth import IdentityVerifier, NotFound, Subject
from storefront.core.exceptions import (
    ForbiddenError,
    LedgerUnavailableError,
    NotFoundError,
    UnauthenticatedError,
)
from storefront.schemas.purchases import ItemLocation
from storefront.services.catalog import CatalogLookup
from storefront.services.purchase_ledger import PurchaseLedger

logger = structlog.get_logger(__name__)


class EntitlementGate:
    """Authorizes downloads and answers entitlement queries.

    The ledger is checked before the catalog so an unentitled caller learns
    nothing about an item beyond what the public catalog shows.
    """

    def __init__(
        self,
        identity: IdentityVerifier,
        ledger: PurchaseLedger,
        catalog: CatalogLookup,
        *,
        default_bucket: str,
        default_suffix: str = ".bin",
        fail_closed: bool = False,
    ):
        """Initialize with collaborators.

        Args:
            identity: Resolves bearer credentials to a Subject
            ledger: Purchase ledger, the sole authority on entitlement
            catalog: Item lookup for storage locations
            default_bucket: Bucket used when an item names none
            default_suffix: Filename suffix when an item has no blob_file_name
            fail_closed: Treat an unavailable ledger as "not entitled" on reads
        """
        self.identity = identity
        self.ledger = ledger
        self.catalog = catalog
        self.default_bucket = default_bucket
        self.default_suffix = default_suffix
        self.fail_closed = fail_closed

    def authenticate(self, credential: str | None) -> Subject:
        result = self.identity.verify(credential)
        if isinstance(result, NotFound):
            logger.debug("gate_unauthenticated", reason=result.reason)
            raise UnauthenticatedError()
        return result.subject

    async def is_entitled(self, buyer_id: str, item_id: int) -> bool:
        try:
            return await self.ledger.is_entitled(buyer_id, item_id)
        except LedgerUnavailableError:
            if self.fail_closed:
                logger.warning("entitlement_check_failed_closed", buyer_id=buyer_id, item_id=item_id)
                return False
            raise

    async def entitlement_status(self, credential: str | None, item_id: int) -> bool:
        subject = self.authenticate(credential)
        return await self.is_entitled(subject.user_id, item_id)

    async def authorize_download(self, credential: str | None, item_id: int) -> ItemLocation:
        """Resolve where the caller may download an item from.

        Raises:
            UnauthenticatedError: credential missing or invalid
            ForbiddenError: caller has no purchase record for the item
            NotFoundError: item or its file location is missing
            LedgerUnavailableError: ledger unreachable and fail_closed is off
        """
        subject = self.authenticate(credential)

        if not await self.is_entitled(subject.user_id, item_id):
            logger.info("download_forbidden", buyer_id=subject.user_id, item_id=item_id)
            raise ForbiddenError()

        item = await self.catalog.get_item(item_id)
        if item is None:
            raise NotFoundError()
        if not item.blob_file_path:
            logger.warning("download_item_without_file", item_id=item_id)
            raise NotFoundError("Item has no downloadable file.")

        filename = item.blob_file_name or f"{item.slug or item.id}{self.default_suffix}"
        return ItemLocation(
            bucket=item.blob_container_name or self.default_bucket,
            path=item.blob_file_path,
            filename=filename,
        )
