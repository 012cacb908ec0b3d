"""Create credit ledger tables.

Revision ID: 0001
Revises:
Create Date: 2026-10-18
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create credit_accounts and credit_events."""

    # --- Credit Accounts ---
    op.create_table(
        "credit_accounts",
        sa.Column("principal", sa.String(255), primary_key=True),
        sa.Column("remaining", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
        sa.CheckConstraint("remaining >= 0", name="ck_credit_accounts_remaining_nonnegative"),
    )

    # --- Credit Events (idempotency log, one row per payment reference) ---
    op.create_table(
        "credit_events",
        sa.Column("payment_ref", sa.String(255), primary_key=True),
        sa.Column("principal", sa.String(255), nullable=False),
        sa.Column("count", sa.Integer(), nullable=False),
        sa.Column("source", sa.String(16), nullable=False, server_default="verify"),
        sa.Column(
            "awarded_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )
    op.create_index("ix_credit_events_principal", "credit_events", ["principal"])


def downgrade() -> None:
    """Drop credit ledger tables."""
    op.drop_index("ix_credit_events_principal", table_name="credit_events")
    op.drop_table("credit_events")
    op.drop_table("credit_accounts")
