"""Purchase pipeline models: catalog items, checkout intents, webhook events, ledger outcomes."""

import uuid
from datetime import datetime
from decimal import Decimal
from enum import StrEnum

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


class Item(BaseModel):
    """Catalog row (read-only). The catalog table names the title column ``name``."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: int
    title: str = Field(validation_alias=AliasChoices("title", "name"))
    slug: str | None = None
    short_description: str | None = None
    description: str | None = None
    price: Decimal | None = None
    is_active: bool | None = True
    blob_container_name: str | None = None
    blob_file_path: str | None = None
    blob_file_name: str | None = None
    poster_url: str | None = None
    thumbnail_url: str | None = None
    created_at: datetime | None = None

    @field_validator("price", mode="before")
    @classmethod
    def _price_from_json_number(cls, value):
        # PostgREST renders numeric columns as JSON numbers; go through repr, not binary
        if isinstance(value, float):
            return str(value)
        return value


class CheckoutIntent(BaseModel):
    """A provider checkout session minted for one buyer and one or more items."""

    session_id: str
    session_url: str
    buyer_id: str
    item_ids: list[int]
    total_minor_units: int
    currency: str
    success_url: str
    cancel_url: str


class ItemLocation(BaseModel):
    """Where the downloadable file for an item lives in blob storage."""

    bucket: str
    path: str
    filename: str


# ── Webhook ─────────────────────────────────────────────────────────


CHECKOUT_COMPLETED = "checkout.session.completed"
CHECKOUT_ASYNC_PAYMENT_SUCCEEDED = "checkout.session.async_payment_succeeded"
PAYMENT_COMPLETED_EVENT_TYPES = frozenset({CHECKOUT_COMPLETED, CHECKOUT_ASYNC_PAYMENT_SUCCEEDED})


class CompletedCheckout(BaseModel):
    """Purchase reconstructed from a checkout session's metadata."""

    session_id: str
    payment_status: str | None = None
    buyer_id: str
    item_ids: list[int]


class WebhookEvent(BaseModel):
    """Authenticated provider callback."""

    event_id: str
    type: str
    created: int | None = None
    checkout: CompletedCheckout | None = None

    @property
    def is_payment_completed(self) -> bool:
        if self.checkout is None or self.type not in PAYMENT_COMPLETED_EVENT_TYPES:
            return False
        # Delayed payment methods complete the session before the money arrives
        return self.checkout.payment_status != "unpaid"


# ── Ledger ──────────────────────────────────────────────────────────


class RecordOutcome(StrEnum):
    INSERTED = "inserted"
    ALREADY_EXISTS = "already_exists"


class BatchStatus(StrEnum):
    RECORDED = "recorded"  # every item is now in the ledger
    PARTIAL = "partial"  # some items written, some failed
    FAILED = "failed"  # nothing could be confirmed


class BatchRecordResult(BaseModel):
    """Per-item outcome of a multi-item ledger write."""

    inserted: list[int] = Field(default_factory=list)
    already_existed: list[int] = Field(default_factory=list)
    failed: list[int] = Field(default_factory=list)

    @property
    def status(self) -> BatchStatus:
        if not self.failed:
            return BatchStatus.RECORDED
        if self.inserted or self.already_existed:
            return BatchStatus.PARTIAL
        return BatchStatus.FAILED


class PurchaseRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    buyer_id: str
    item_id: int
    stripe_session_id: str | None = None
    recorded_at: datetime | None = None


# ── API request / response schemas ──────────────────────────────────


class CheckoutRequest(BaseModel):
    item_ids: list[int] = Field(validation_alias=AliasChoices("itemIds", "item_ids"), min_length=1)


class CheckoutResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_url: str = Field(alias="sessionUrl")


class PurchaseStatusResponse(BaseModel):
    purchased: bool


class WebhookAckResponse(BaseModel):
    status: str


class GrantRequest(BaseModel):
    buyer_id: str = Field(validation_alias=AliasChoices("buyerId", "buyer_id"), min_length=1)
    item_id: int = Field(validation_alias=AliasChoices("itemId", "item_id"), gt=0)

    @field_validator("buyer_id")
    @classmethod
    def _normalize_buyer_id(cls, value: str) -> str:
        # Ledger rows are keyed on the canonical form of the token subject
        return str(uuid.UUID(value))


class GrantResponse(BaseModel):
    outcome: RecordOutcome
