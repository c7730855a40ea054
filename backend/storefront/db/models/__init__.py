"""Re-export all models so Base.metadata sees them."""

from storefront.db.models.purchase import Purchase

__all__ = [
    "Purchase",
]
