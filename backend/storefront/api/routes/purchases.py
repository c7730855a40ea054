"""Purchase routes: Stripe Checkout, the completion webhook, and entitlement status."""

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Request

from storefront.api.dependencies import (
    get_checkout_factory,
    get_entitlement_gate,
    get_ledger,
    get_webhook_service,
)
from storefront.core.auth import Subject, bearer_token, require_subject
from storefront.core.exceptions import AlreadyPurchasedError, LedgerUnavailableError
from storefront.schemas.purchases import (
    CheckoutRequest,
    CheckoutResponse,
    PurchaseStatusResponse,
    WebhookAckResponse,
)
from storefront.services.checkout_service import CheckoutSessionFactory
from storefront.services.entitlement_gate import EntitlementGate
from storefront.services.purchase_ledger import PurchaseLedger
from storefront.services.webhook_service import PurchaseWebhookService, WebhookOutcome

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/purchases", tags=["purchases"])


@router.post("/checkout", response_model=CheckoutResponse, response_model_by_alias=True)
async def create_checkout_session(
    body: CheckoutRequest,
    subject: Subject = Depends(require_subject),
    ledger: PurchaseLedger = Depends(get_ledger),
    factory: CheckoutSessionFactory = Depends(get_checkout_factory),
):
    """Create a Stripe Checkout session for the caller and return its URL."""
    owned = [item_id for item_id in dict.fromkeys(body.item_ids) if await ledger.is_entitled(subject.user_id, item_id)]
    if owned:
        logger.info("checkout_rejected_already_purchased", buyer_id=subject.user_id, item_ids=owned)
        raise AlreadyPurchasedError(owned)

    intent = await factory.create_checkout(subject.user_id, body.item_ids)
    return CheckoutResponse(session_url=intent.session_url)


@router.post("/webhook", response_model=WebhookAckResponse)
async def stripe_webhook(
    request: Request,
    service: PurchaseWebhookService = Depends(get_webhook_service),
):
    """Handle Stripe checkout completion events with signature verification."""
    body = await request.body()
    try:
        outcome = await service.handle(body, request.headers.get("stripe-signature"))
    except LedgerUnavailableError as exc:
        # 5xx makes Stripe redeliver; recording is idempotent
        raise HTTPException(status_code=500, detail=exc.detail) from exc
    if outcome is WebhookOutcome.IGNORED:
        return WebhookAckResponse(status="ignored")
    return WebhookAckResponse(status="ok")


@router.get("/status", response_model=PurchaseStatusResponse)
async def get_purchase_status(
    item_id: int = Query(alias="itemId", gt=0),
    token: str | None = Depends(bearer_token),
    gate: EntitlementGate = Depends(get_entitlement_gate),
):
    """Return whether the caller has purchased an item."""
    return PurchaseStatusResponse(purchased=await gate.entitlement_status(token, item_id))
