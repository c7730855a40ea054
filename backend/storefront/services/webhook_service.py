"""PurchaseWebhookService: turns authenticated Stripe callbacks into ledger writes.

Outcomes map onto the provider contract:
- RECORDED / ALREADY_RECORDED / IGNORED / MALFORMED -> 200, provider stops retrying
- InvalidSignatureError -> 400
- WebhookNotConfiguredError, LedgerUnavailableError -> 500, provider redelivers
"""

from enum import StrEnum

import structlog

from storefront.core.exceptions import LedgerUnavailableError, MalformedEventError
from storefront.metrics.cloudwatch import emit_business_event
from storefront.schemas.purchases import BatchStatus
from storefront.services.purchase_ledger import PurchaseLedger
from storefront.services.webhook_authenticator import WebhookAuthenticator

logger = structlog.get_logger(__name__)


class WebhookOutcome(StrEnum):
    RECORDED = "recorded"
    ALREADY_RECORDED = "already_recorded"
    IGNORED = "ignored"
    MALFORMED = "malformed"


class PurchaseWebhookService:
    def __init__(self, authenticator: WebhookAuthenticator, ledger: PurchaseLedger):
        self.authenticator = authenticator
        self.ledger = ledger

    async def handle(self, raw_payload: bytes, signature_header: str | None) -> WebhookOutcome:
        """Authenticate a callback and record the purchase it reports.

        Raises:
            WebhookNotConfiguredError: signing secret missing (operator error)
            InvalidSignatureError: untrusted payload, nothing is written
            LedgerUnavailableError: some items could not be confirmed; safe to redeliver
        """
        try:
            event = self.authenticator.authenticate(raw_payload, signature_header)
        except MalformedEventError as exc:
            # Acknowledge so the provider does not retry a payload we can never use
            logger.error("webhook_malformed_event_dropped", event_id=exc.event_id, reason=exc.reason)
            return WebhookOutcome.MALFORMED

        logger.info("stripe_webhook_received", event_id=event.event_id, event_type=event.type)

        if not event.is_payment_completed:
            logger.debug(
                "stripe_webhook_ignored",
                event_id=event.event_id,
                event_type=event.type,
                payment_status=event.checkout.payment_status if event.checkout else None,
            )
            return WebhookOutcome.IGNORED

        checkout = event.checkout
        result = await self.ledger.record_many_if_absent(checkout.buyer_id, checkout.item_ids, checkout.session_id)

        if result.status is not BatchStatus.RECORDED:
            logger.error(
                "webhook_purchase_not_confirmed",
                event_id=event.event_id,
                session_id=checkout.session_id,
                buyer_id=checkout.buyer_id,
                status=result.status.value,
                failed=result.failed,
            )
            raise LedgerUnavailableError(
                f"Could not record {len(result.failed)} of {len(checkout.item_ids)} item(s) "
                f"for session {checkout.session_id}"
            )

        if not result.inserted:
            logger.info(
                "purchase_already_recorded_idempotent_skip",
                event_id=event.event_id,
                session_id=checkout.session_id,
                buyer_id=checkout.buyer_id,
                item_ids=checkout.item_ids,
            )
            return WebhookOutcome.ALREADY_RECORDED

        logger.info(
            "purchase_recorded_via_webhook",
            event_id=event.event_id,
            session_id=checkout.session_id,
            buyer_id=checkout.buyer_id,
            inserted=result.inserted,
            already_existed=result.already_existed,
        )
        await emit_business_event("purchase_recorded", user_id=checkout.buyer_id, count=len(result.inserted))
        return WebhookOutcome.RECORDED
