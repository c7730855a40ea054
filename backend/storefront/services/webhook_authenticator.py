"""Stripe webhook authentication and parsing.

Signature verification runs over the raw request bytes before anything is
decoded as JSON. Only after the signature checks out is the payload parsed;
from that point failures are MalformedEventError, which callers acknowledge
instead of letting the provider retry forever.
"""

import uuid

import stripe
import structlog
from pydantic import BaseModel, ValidationError

from storefront.core.exceptions import (
    InvalidSignatureError,
    MalformedEventError,
    WebhookNotConfiguredError,
)
from storefront.schemas.purchases import PAYMENT_COMPLETED_EVENT_TYPES, CompletedCheckout, WebhookEvent

logger = structlog.get_logger(__name__)


class _EventData(BaseModel):
    object: dict


class _EventEnvelope(BaseModel):
    id: str
    type: str
    created: int | None = None
    data: _EventData | None = None


def parse_item_ids(raw: str) -> list[int]:
    """Parse a comma-joined list of positive item ids, keeping first-seen order."""
    item_ids: list[int] = []
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        if not (part.isascii() and part.isdigit()):
            raise ValueError(f"Item id is not a decimal integer: {part!r}")
        item_id = int(part)
        if item_id <= 0:
            raise ValueError(f"Item id must be positive: {item_id}")
        if item_id not in item_ids:
            item_ids.append(item_id)
    if not item_ids:
        raise ValueError("No item ids in metadata")
    return item_ids


def parse_completed_checkout(session: dict, event_id: str | None = None) -> CompletedCheckout:
    """Rebuild the purchase from a checkout session object.

    Raises:
        MalformedEventError: session id or metadata missing or unparsable
    """
    session_id = session.get("id")
    if not session_id or not isinstance(session_id, str):
        raise MalformedEventError("Checkout session without id", event_id=event_id)

    metadata = session.get("metadata") or {}
    if not isinstance(metadata, dict):
        raise MalformedEventError(f"Checkout session {session_id} metadata is not an object", event_id=event_id)
    raw_buyer = metadata.get("buyer_id")
    raw_items = metadata.get("item_ids") or metadata.get("item_id")
    if not raw_buyer or not raw_items:
        raise MalformedEventError(
            f"Checkout session {session_id} missing required metadata (buyer_id/item_ids)",
            event_id=event_id,
        )

    try:
        buyer_id = str(uuid.UUID(str(raw_buyer)))
        item_ids = parse_item_ids(str(raw_items))
    except ValueError as exc:
        raise MalformedEventError(
            f"Invalid metadata in checkout session {session_id}: {exc}",
            event_id=event_id,
        ) from exc

    try:
        return CompletedCheckout(
            session_id=session_id,
            payment_status=session.get("payment_status"),
            buyer_id=buyer_id,
            item_ids=item_ids,
        )
    except ValidationError as exc:
        raise MalformedEventError(
            f"Invalid checkout session {session_id}: {exc.error_count()} field error(s)",
            event_id=event_id,
        ) from exc


class WebhookAuthenticator:
    """Verifies Stripe-Signature headers and parses authenticated events."""

    def __init__(self, signing_secret: str | None, tolerance_seconds: int = 300):
        """Initialize with the endpoint signing secret.

        Args:
            signing_secret: Stripe endpoint secret (whsec_...); blank means not configured
            tolerance_seconds: Maximum age of the signed timestamp; must be positive

        Raises:
            ValueError: tolerance_seconds is zero or negative
        """
        if tolerance_seconds <= 0:
            raise ValueError(f"Webhook tolerance must be positive, got {tolerance_seconds}")
        self.signing_secret = (signing_secret or "").strip()
        self.tolerance_seconds = tolerance_seconds

    def authenticate(self, raw_payload: bytes, signature_header: str | None) -> WebhookEvent:
        """Authenticate a callback and parse it.

        Returns:
            WebhookEvent; ``checkout`` is set only for payment-completed types

        Raises:
            WebhookNotConfiguredError: signing secret is blank
            InvalidSignatureError: header missing, signature mismatch, or timestamp stale
            MalformedEventError: authenticated payload cannot be parsed
        """
        if not self.signing_secret:
            raise WebhookNotConfiguredError("Stripe webhook secret is not configured. Set STRIPE_WEBHOOK_SECRET.")
        if not signature_header:
            raise InvalidSignatureError("Missing Stripe-Signature header.")

        try:
            payload = raw_payload.decode("utf-8")
        except UnicodeDecodeError as exc:
            # Stripe signs UTF-8 JSON; other bytes cannot carry a valid signature
            raise InvalidSignatureError("Invalid signature.") from exc

        try:
            stripe.WebhookSignature.verify_header(payload, signature_header, self.signing_secret, self.tolerance_seconds)
        except stripe.SignatureVerificationError as exc:
            raise InvalidSignatureError(f"Invalid signature: {exc}") from exc

        try:
            envelope = _EventEnvelope.model_validate_json(raw_payload)
        except ValidationError as exc:
            raise MalformedEventError(f"Unparsable event payload: {exc.error_count()} error(s)") from exc

        event = WebhookEvent(event_id=envelope.id, type=envelope.type, created=envelope.created)
        if envelope.type not in PAYMENT_COMPLETED_EVENT_TYPES:
            return event

        if envelope.data is None:
            raise MalformedEventError(f"{envelope.type} event without data", event_id=envelope.id)
        event.checkout = parse_completed_checkout(envelope.data.object, event_id=envelope.id)
        return event
