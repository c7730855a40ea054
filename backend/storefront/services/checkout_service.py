"""CheckoutSessionFactory: turns catalog items into a Stripe Checkout session.

Prices always come from the catalog, never from the client. The buyer and
item ids travel as session metadata because the completion webhook is the
only way back into this service.
"""

from collections.abc import Sequence

import stripe
import structlog

from storefront.core.config import Settings
from storefront.core.exceptions import (
    InvalidCheckoutRequestError,
    ItemNotFoundError,
    ItemNotPurchasableError,
    PriceConversionError,
    ProviderError,
)
from storefront.domain.pricing import InexactPriceError, to_minor_units
from storefront.metrics.cloudwatch import emit_business_event
from storefront.schemas.purchases import CheckoutIntent, Item
from storefront.services.catalog import CatalogLookup

logger = structlog.get_logger(__name__)

# Stripe rejects metadata values longer than this
METADATA_VALUE_MAX_LENGTH = 500


def _configure_stripe(settings: Settings) -> None:
    """Configure the stripe module with the secret key and retry policy."""
    stripe.api_key = settings.stripe_secret_key
    stripe.max_network_retries = settings.stripe_max_network_retries


class CheckoutSessionFactory:
    """Builds provider checkout sessions for one buyer and one or more items."""

    def __init__(self, catalog: CatalogLookup, settings: Settings):
        self.catalog = catalog
        self.settings = settings

    async def _resolve_items(self, item_ids: Sequence[int]) -> list[Item]:
        items: list[Item] = []
        for item_id in item_ids:
            item = await self.catalog.get_item(item_id)
            if item is None:
                logger.warning("checkout_item_not_found", item_id=item_id)
                raise ItemNotFoundError(item_id)
            items.append(item)

        for item in items:
            if item.price is None or item.is_active is False:
                raise ItemNotPurchasableError(item.id)
        return items

    def _line_item(self, item: Item, unit_amount: int) -> dict:
        product_data: dict = {"name": item.title}
        if item.short_description:
            product_data["description"] = item.short_description
        return {
            "quantity": 1,
            "price_data": {
                "currency": self.settings.checkout_currency,
                "unit_amount": unit_amount,
                "product_data": product_data,
            },
        }

    async def create_checkout(self, buyer_id: str, item_ids: Sequence[int]) -> CheckoutIntent:
        """Create a checkout session for the given items.

        Duplicate-purchase prevention is the caller's job (query the ledger first).

        Args:
            buyer_id: Authenticated subject id of the buyer
            item_ids: Catalog ids in display order, non-empty, no duplicates

        Returns:
            CheckoutIntent with the provider session id and URL

        Raises:
            InvalidCheckoutRequestError: empty buyer, empty or duplicate item ids
            ItemNotFoundError: an id does not resolve in the catalog
            ItemNotPurchasableError: an item has no price or is inactive
            PriceConversionError: a price is not exact in minor units
            ProviderError: the Stripe call failed
        """
        if not buyer_id or not buyer_id.strip():
            raise InvalidCheckoutRequestError("buyer_id is required.")
        item_ids = list(item_ids)
        if not item_ids:
            raise InvalidCheckoutRequestError("itemIds must not be empty.")
        if len(set(item_ids)) != len(item_ids):
            raise InvalidCheckoutRequestError("itemIds must not contain duplicates.")

        item_ids_meta = ",".join(str(i) for i in item_ids)
        if len(item_ids_meta) > METADATA_VALUE_MAX_LENGTH:
            raise InvalidCheckoutRequestError("Too many items for a single checkout.")

        items = await self._resolve_items(item_ids)

        line_items: list[dict] = []
        total = 0
        for item in items:
            try:
                unit_amount = to_minor_units(item.price, self.settings.currency_minor_unit_digits)
            except InexactPriceError as exc:
                logger.error("checkout_price_not_exact", item_id=item.id, price=str(item.price), error=str(exc))
                raise PriceConversionError(item.id, item.price) from exc
            line_items.append(self._line_item(item, unit_amount))
            total += unit_amount

        _configure_stripe(self.settings)
        try:
            session = await stripe.checkout.Session.create_async(
                mode="payment",
                line_items=line_items,
                success_url=self.settings.stripe_success_url,
                cancel_url=self.settings.stripe_cancel_url,
                client_reference_id=buyer_id,
                metadata={
                    "buyer_id": buyer_id,
                    "item_ids": item_ids_meta,
                },
            )
        except stripe.StripeError as exc:
            logger.error(
                "checkout_provider_error",
                buyer_id=buyer_id,
                item_ids=item_ids,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            raise ProviderError() from exc

        logger.info(
            "checkout_session_created",
            session_id=session.id,
            buyer_id=buyer_id,
            item_ids=item_ids,
            amount=total,
        )
        await emit_business_event("checkout_created", user_id=buyer_id)

        return CheckoutIntent(
            session_id=session.id,
            session_url=session.url,
            buyer_id=buyer_id,
            item_ids=item_ids,
            total_minor_units=total,
            currency=self.settings.checkout_currency,
            success_url=self.settings.stripe_success_url,
            cancel_url=self.settings.stripe_cancel_url,
        )
