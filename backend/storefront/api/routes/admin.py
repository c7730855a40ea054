"""Admin API routes: manual entitlement grants."""

import structlog
from fastapi import APIRouter, Depends

from storefront.api.dependencies import get_ledger
from storefront.core.auth import Subject, require_admin
from storefront.schemas.purchases import GrantRequest, GrantResponse
from storefront.services.purchase_ledger import PurchaseLedger

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


@router.post("/grants", response_model=GrantResponse)
async def grant_item(
    body: GrantRequest,
    admin: Subject = Depends(require_admin),
    ledger: PurchaseLedger = Depends(get_ledger),
):
    """Record an entitlement without a checkout session (support refunds, comps)."""
    outcome = await ledger.record_if_absent(body.buyer_id, body.item_id)
    logger.info(
        "admin_grant_recorded",
        admin_id=admin.user_id,
        buyer_id=body.buyer_id,
        item_id=body.item_id,
        outcome=outcome.value,
    )
    return GrantResponse(outcome=outcome)
