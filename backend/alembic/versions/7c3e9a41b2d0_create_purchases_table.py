"""create purchases table

Revision ID: 7c3e9a41b2d0
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "7c3e9a41b2d0"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create purchases with one row per (buyer_id, item_id)."""
    op.create_table(
        "purchases",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("buyer_id", sa.String(length=255), nullable=False),
        sa.Column("item_id", sa.Integer(), nullable=False),
        sa.Column("stripe_session_id", sa.String(length=255), nullable=True),
        sa.Column(
            "recorded_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("buyer_id", "item_id", name="uq_purchase_buyer_item"),
    )
    op.create_index(op.f("ix_purchases_buyer_id"), "purchases", ["buyer_id"], unique=False)


def downgrade() -> None:
    """Drop purchases table."""
    op.drop_index(op.f("ix_purchases_buyer_id"), table_name="purchases")
    op.drop_table("purchases")
