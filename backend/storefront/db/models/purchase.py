"""Purchase model: one row per (buyer, item) entitlement."""

from datetime import UTC, datetime

from sqlalchemy import Column, DateTime, Integer, String, UniqueConstraint

from storefront.db.base import Base


class Purchase(Base):
    """Granted entitlement. Created once by a paid checkout or an admin grant, never mutated."""

    __tablename__ = "purchases"

    id = Column(Integer, primary_key=True, autoincrement=True)
    buyer_id = Column(String(255), nullable=False, index=True)
    item_id = Column(Integer, nullable=False)
    stripe_session_id = Column(String(255), nullable=True)  # None for admin grants
    recorded_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
    )

    # At most one entitlement per buyer per item; the ledger relies on this for idempotency
    __table_args__ = (UniqueConstraint("buyer_id", "item_id", name="uq_purchase_buyer_item"),)
