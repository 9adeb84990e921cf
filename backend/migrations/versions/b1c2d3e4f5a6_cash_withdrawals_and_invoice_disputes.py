"""cash_withdrawals_and_invoice_disputes

Revision ID: b1c2d3e4f5a6
Revises: a0b1c2d3e4f5
Create Date: 2026-10-18 15:30:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = "b1c2d3e4f5a6"
down_revision: Union[str, None] = "a0b1c2d3e4f5"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


withdrawal_reason = postgresql.ENUM(
    "BANK_DEPOSIT",
    "PETTY_CASH",
    "OWNER_DRAW",
    "EXPENSE",
    "OTHER",
    name="withdrawalreason",
    create_type=False,
)


def upgrade() -> None:
    withdrawal_reason.create(op.get_bind(), checkfirst=True)

    op.create_table(
        "cash_withdrawals",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("tenant_id", sa.Uuid(), sa.ForeignKey("tenants.id"), nullable=False),
        sa.Column(
            "cash_register_id", sa.Uuid(), sa.ForeignKey("cash_registers.id"), nullable=False
        ),
        sa.Column(
            "destination_account_id",
            sa.Uuid(),
            sa.ForeignKey("cash_accounts.id"),
            nullable=True,
        ),
        sa.Column("withdrawal_number", sa.String(20), nullable=False),
        sa.Column("amount", sa.Numeric(precision=20, scale=2), nullable=False),
        sa.Column("reason", withdrawal_reason, nullable=False),
        sa.Column("concept", sa.String(255), nullable=False),
        sa.Column("recipient_name", sa.String(255), nullable=False),
        sa.Column("reference", sa.String(100), nullable=True),
        sa.Column("correlation_id", sa.String(64), nullable=False),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("withdrawn_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("voided_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("voided_by", sa.Uuid(), sa.ForeignKey("users.id"), nullable=True),
        sa.UniqueConstraint("tenant_id", "withdrawal_number", name="uq_withdrawal_tenant_number"),
        sa.CheckConstraint("amount > 0", name="ck_withdrawal_amount_positive"),
    )
    op.create_index("ix_cash_withdrawals_register", "cash_withdrawals", ["cash_register_id"])

    op.add_column("supplier_invoices", sa.Column("dispute_reason", sa.Text(), nullable=True))


def downgrade() -> None:
    op.drop_column("supplier_invoices", "dispute_reason")
    op.drop_index("ix_cash_withdrawals_register", table_name="cash_withdrawals")
    op.drop_table("cash_withdrawals")
    postgresql.ENUM(name="withdrawalreason").drop(op.get_bind(), checkfirst=True)
