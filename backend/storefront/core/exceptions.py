"""Closed error hierarchy for the purchase and entitlement pipeline.

Every error carries the HTTP status the API answers with; the handler in
``storefront.main`` turns any ``StorefrontError`` into a JSON response.
"""


class StorefrontError(Exception):
    """Base exception for the storefront service."""

    status_code: int = 500
    default_detail: str = "Internal server error"

    def __init__(self, detail: str | None = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


# ── Checkout ────────────────────────────────────────────────────────


class CheckoutError(StorefrontError):
    """Raised when a checkout session cannot be created."""


class InvalidCheckoutRequestError(CheckoutError):
    status_code = 422
    default_detail = "Invalid checkout request."


class ItemNotFoundError(CheckoutError):
    status_code = 400
    default_detail = "Item not found."

    def __init__(self, item_id: int):
        self.item_id = item_id
        super().__init__(f"Item not found: {item_id}")


class ItemNotPurchasableError(CheckoutError):
    status_code = 400
    default_detail = "Item is not available for purchase."

    def __init__(self, item_id: int):
        self.item_id = item_id
        super().__init__(f"Item {item_id} has no price configured or is inactive.")


class PriceConversionError(CheckoutError):
    """Price cannot be expressed exactly in minor currency units."""

    status_code = 400
    default_detail = "Item price cannot be charged exactly."

    def __init__(self, item_id: int, price: object):
        self.item_id = item_id
        self.price = price
        super().__init__(f"Price {price} of item {item_id} cannot be converted to minor units without rounding.")


class AlreadyPurchasedError(CheckoutError):
    status_code = 409
    default_detail = "You have already purchased this item."

    def __init__(self, item_ids: list[int]):
        self.item_ids = item_ids
        super().__init__(f"You have already purchased item(s): {', '.join(str(i) for i in item_ids)}.")


class ProviderError(CheckoutError):
    status_code = 502
    default_detail = "Payment service error. Please try again later."


# ── Webhook ─────────────────────────────────────────────────────────


class WebhookAuthError(StorefrontError):
    """Raised when a provider callback cannot be trusted or parsed."""


class WebhookNotConfiguredError(WebhookAuthError):
    status_code = 500
    default_detail = "Webhook not configured."


class InvalidSignatureError(WebhookAuthError):
    status_code = 400
    default_detail = "Invalid signature."


class MalformedEventError(WebhookAuthError):
    """Authenticated event whose payload or metadata cannot be used.

    Callers log and acknowledge these; the provider must not redeliver them.
    """

    status_code = 200
    default_detail = "Malformed event."

    def __init__(self, reason: str, event_id: str | None = None):
        self.reason = reason
        self.event_id = event_id
        super().__init__(reason)


# ── Ledger ──────────────────────────────────────────────────────────


class LedgerError(StorefrontError):
    """Raised by purchase ledger implementations."""


class LedgerUnavailableError(LedgerError):
    status_code = 503
    default_detail = "Purchase ledger unavailable."


# ── Entitlement gate ────────────────────────────────────────────────


class GateError(StorefrontError):
    """Raised when a download or status request is not authorized."""


class UnauthenticatedError(GateError):
    status_code = 401
    default_detail = "Authentication required."


class ForbiddenError(GateError):
    status_code = 403
    default_detail = "Item not purchased."


class NotFoundError(GateError):
    status_code = 404
    default_detail = "Item not found."


# ── Blob store ──────────────────────────────────────────────────────


class BlobStoreError(StorefrontError):
    """Raised by blob store implementations."""


class BlobStoreUnavailableError(BlobStoreError):
    status_code = 502
    default_detail = "File storage unavailable."


# ── Catalog ─────────────────────────────────────────────────────────


class CatalogUnavailableError(StorefrontError):
    status_code = 502
    default_detail = "Catalog unavailable."
