"""initial_settlement_schema

Revision ID: a0b1c2d3e4f5
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = "a0b1c2d3e4f5"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


ENUMS = {
    "roleenum": ("ADMIN", "MANAGER", "CASHIER"),
    "documenttype": ("CUIT", "DNI", "OTHER"),
    "stockmovementtype": ("SALE", "PURCHASE", "RETURN", "ADJUSTMENT"),
    "movementtype": (
        "OPENING", "SALE_INCOME", "CHARGE", "PAYMENT", "INCOME", "EXPENSE",
        "WITHDRAWAL", "DEPOSIT", "TRANSFER_IN", "TRANSFER_OUT", "RECEIVED",
        "RETURNED", "PURCHASE", "SUPPLIER_PAYMENT", "ADJUSTMENT", "REVERSAL",
    ),
    "paymentmethod": (
        "CASH", "DEBIT_CARD", "CREDIT_CARD", "TRANSFER", "QR", "CHECK", "ACCOUNT", "OTHER",
    ),
    "cashaccounttype": ("CASH", "BANK", "DIGITAL_WALLET", "OTHER"),
    "registerstatus": ("OPEN", "CLOSED"),
    "discounttype": ("PERCENTAGE", "FIXED"),
    "salestatus": ("COMPLETED", "CANCELLED"),
    "quotestatus": ("DRAFT", "SENT", "APPROVED", "REJECTED", "CONVERTED"),
    "invoiceletter": ("A", "B", "C"),
    "invoicestatus": ("APPROVED", "REJECTED"),
    "postatus": ("PENDING", "APPROVED", "PARTIAL", "RECEIVED", "CANCELLED"),
    "supplierinvoicestatus": ("PENDING", "PARTIAL", "PAID", "DISPUTED"),
}


def _enum(name: str) -> postgresql.ENUM:
    return postgresql.ENUM(*ENUMS[name], name=name, create_type=False)


def _money() -> sa.Numeric:
    return sa.Numeric(precision=20, scale=2)


def _created_at() -> sa.Column:
    return sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now())


def _ledger_columns() -> list:
    return [
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("tenant_id", sa.Uuid(), sa.ForeignKey("tenants.id"), nullable=False),
        sa.Column("current_balance", _money(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        _created_at(),
    ]


def _movement_columns() -> list:
    return [
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("tenant_id", sa.Uuid(), sa.ForeignKey("tenants.id"), nullable=False),
        sa.Column("type", _enum("movementtype"), nullable=False),
        sa.Column("amount", _money(), nullable=False),
        sa.Column("balance_before", _money(), nullable=False),
        sa.Column("balance_after", _money(), nullable=False),
        sa.Column("concept", sa.String(255), nullable=False),
        sa.Column("reference", sa.String(100), nullable=True),
        sa.Column("correlation_id", sa.String(64), nullable=True, index=True),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id"), nullable=True),
        _created_at(),
    ]


def upgrade() -> None:
    bind = op.get_bind()
    for name in ENUMS:
        _enum(name).create(bind, checkfirst=True)

    # ── Organization ──────────────────────────────────────────────────
    op.create_table(
        "tenants",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("cuit", sa.String(13), nullable=True),
        sa.Column("afip_point_of_sale", sa.Integer(), nullable=True),
        sa.Column("afip_enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            "require_payment_mapping", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        _created_at(),
    )
    op.create_table(
        "locations",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("tenant_id", sa.Uuid(), sa.ForeignKey("tenants.id"), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        _created_at(),
    )
    op.create_index("ix_locations_tenant", "locations", ["tenant_id"])
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("tenant_id", sa.Uuid(), sa.ForeignKey("tenants.id"), nullable=False),
        sa.Column("name", sa.String(150), nullable=False),
        sa.Column("role", _enum("roleenum"), nullable=False, server_default="CASHIER"),
        sa.Column("location_id", sa.Uuid(), sa.ForeignKey("locations.id"), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        _created_at(),
    )
    op.create_index("ix_users_tenant", "users", ["tenant_id"])
    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("tenant_id", sa.Uuid(), sa.ForeignKey("tenants.id"), nullable=True),
        sa.Column("table_name", sa.String(100), nullable=False),
        sa.Column("record_id", sa.String(255), nullable=False),
        sa.Column("action", sa.String(50), nullable=False),
        sa.Column("changed_by", sa.Uuid(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("new_values", sa.JSON(), nullable=True),
        sa.Column("ip_address", sa.String(45), nullable=True),
        _created_at(),
    )
    op.create_index("ix_audit_tenant", "audit_logs", ["tenant_id"])
    op.create_index("ix_audit_table_record", "audit_logs", ["table_name", "record_id"])
    op.create_index("ix_audit_action", "audit_logs", ["action"])

    # ── Catalog ───────────────────────────────────────────────────────
    op.create_table(
        "products",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("tenant_id", sa.Uuid(), sa.ForeignKey("tenants.id"), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("sku", sa.String(50), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("sale_price", _money(), nullable=False),
        sa.Column("cost_price", _money(), nullable=False, server_default="0"),
        sa.Column(
            "tax_rate", sa.Numeric(precision=5, scale=2), nullable=False, server_default="21"
        ),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        _created_at(),
        sa.CheckConstraint("sale_price >= 0", name="ck_product_sale_price_non_negative"),
        sa.CheckConstraint("cost_price >= 0", name="ck_product_cost_price_non_negative"),
        sa.UniqueConstraint("tenant_id", "sku", name="uq_product_tenant_sku"),
    )
    op.create_index("ix_products_tenant", "products", ["tenant_id"])
    op.create_table(
        "product_variants",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("tenant_id", sa.Uuid(), sa.ForeignKey("tenants.id"), nullable=False),
        sa.Column("product_id", sa.Uuid(), sa.ForeignKey("products.id"), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("sku", sa.String(50), nullable=False),
        sa.Column("sale_price", _money(), nullable=False),
        sa.Column("cost_price", _money(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.UniqueConstraint("tenant_id", "sku", name="uq_variant_tenant_sku"),
    )
    op.create_index("ix_variants_product", "product_variants", ["product_id"])

    # ── Customers ─────────────────────────────────────────────────────
    op.create_table(
        "customers",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("tenant_id", sa.Uuid(), sa.ForeignKey("tenants.id"), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("document_type", _enum("documenttype"), nullable=True),
        sa.Column("document_number", sa.String(20), nullable=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("phone", sa.String(50), nullable=True),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        _created_at(),
    )
    op.create_index("ix_customers_tenant", "customers", ["tenant_id"])
    op.create_table(
        "customer_accounts",
        *_ledger_columns(),
        sa.Column(
            "customer_id", sa.Uuid(), sa.ForeignKey("customers.id"), nullable=False, unique=True
        ),
        sa.Column("credit_limit", _money(), nullable=False, server_default="0"),
    )
    op.create_index("ix_customer_accounts_tenant", "customer_accounts", ["tenant_id"])

    # ── Treasury and registers ────────────────────────────────────────
    op.create_table(
        "cash_accounts",
        *_ledger_columns(),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("type", _enum("cashaccounttype"), nullable=False, server_default="BANK"),
        sa.Column("description", sa.Text(), nullable=True),
        sa.UniqueConstraint("tenant_id", "name", name="uq_cash_account_tenant_name"),
    )
    op.create_table(
        "payment_method_accounts",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("tenant_id", sa.Uuid(), sa.ForeignKey("tenants.id"), nullable=False),
        sa.Column("payment_method", _enum("paymentmethod"), nullable=False),
        sa.Column(
            "cash_account_id", sa.Uuid(), sa.ForeignKey("cash_accounts.id"), nullable=False
        ),
        sa.UniqueConstraint("tenant_id", "payment_method", name="uq_payment_method_account"),
    )
    op.create_table(
        "cash_registers",
        *_ledger_columns(),
        sa.Column("location_id", sa.Uuid(), sa.ForeignKey("locations.id"), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("status", _enum("registerstatus"), nullable=False, server_default="OPEN"),
        sa.Column("opening_balance", _money(), nullable=False, server_default="0"),
        sa.Column("closing_balance", _money(), nullable=True),
        sa.Column("difference", _money(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("opened_by", sa.Uuid(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("closed_by", sa.Uuid(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("opened_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index(
        "ix_cash_registers_tenant_status", "cash_registers", ["tenant_id", "status"]
    )
    op.create_index("ix_cash_registers_location", "cash_registers", ["location_id"])
    op.create_table(
        "petty_cash_funds",
        *_ledger_columns(),
        sa.Column("name", sa.String(255), nullable=False, server_default="Caja Chica"),
        sa.UniqueConstraint("tenant_id", name="uq_petty_cash_tenant"),
    )

    # ── Suppliers and purchasing ──────────────────────────────────────
    op.create_table(
        "suppliers",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("tenant_id", sa.Uuid(), sa.ForeignKey("tenants.id"), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("cuit", sa.String(13), nullable=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("phone", sa.String(50), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        _created_at(),
    )
    op.create_index("ix_suppliers_tenant", "suppliers", ["tenant_id"])
    op.create_table(
        "supplier_accounts",
        *_ledger_columns(),
        sa.Column(
            "supplier_id", sa.Uuid(), sa.ForeignKey("suppliers.id"), nullable=False, unique=True
        ),
    )
    op.create_table(
        "purchase_orders",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("tenant_id", sa.Uuid(), sa.ForeignKey("tenants.id"), nullable=False),
        sa.Column("supplier_id", sa.Uuid(), sa.ForeignKey("suppliers.id"), nullable=False),
        sa.Column("location_id", sa.Uuid(), sa.ForeignKey("locations.id"), nullable=False),
        sa.Column("purchase_number", sa.String(20), nullable=False),
        sa.Column("status", _enum("postatus"), nullable=False, server_default="PENDING"),
        sa.Column("total", _money(), nullable=False, server_default="0"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("received_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_by", sa.Uuid(), sa.ForeignKey("users.id"), nullable=False),
        _created_at(),
        sa.UniqueConstraint("tenant_id", "purchase_number", name="uq_po_tenant_number"),
    )
    op.create_index("ix_po_supplier", "purchase_orders", ["supplier_id"])
    op.create_index("ix_po_status", "purchase_orders", ["status"])
    op.create_table(
        "purchase_order_items",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("po_id", sa.Uuid(), sa.ForeignKey("purchase_orders.id"), nullable=False),
        sa.Column("product_id", sa.Uuid(), sa.ForeignKey("products.id"), nullable=False),
        sa.Column(
            "product_variant_id", sa.Uuid(), sa.ForeignKey("product_variants.id"), nullable=True
        ),
        sa.Column("quantity_ordered", sa.Integer(), nullable=False),
        sa.Column("quantity_received", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("unit_cost", _money(), nullable=False),
        sa.CheckConstraint("quantity_ordered > 0", name="ck_po_item_quantity_positive"),
        sa.CheckConstraint(
            "quantity_received <= quantity_ordered", name="ck_po_item_no_over_receipt"
        ),
    )
    op.create_index("ix_po_items_po", "purchase_order_items", ["po_id"])

    # ── Sales and quotes ──────────────────────────────────────────────
    op.create_table(
        "sales",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("tenant_id", sa.Uuid(), sa.ForeignKey("tenants.id"), nullable=False),
        sa.Column("location_id", sa.Uuid(), sa.ForeignKey("locations.id"), nullable=False),
        sa.Column(
            "cash_register_id", sa.Uuid(), sa.ForeignKey("cash_registers.id"), nullable=False
        ),
        sa.Column("customer_id", sa.Uuid(), sa.ForeignKey("customers.id"), nullable=True),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("sale_number", sa.String(20), nullable=False),
        sa.Column("status", _enum("salestatus"), nullable=False, server_default="COMPLETED"),
        sa.Column("subtotal", _money(), nullable=False),
        sa.Column("tax_amount", _money(), nullable=False),
        sa.Column("discount_type", _enum("discounttype"), nullable=True),
        sa.Column(
            "discount_value",
            sa.Numeric(precision=20, scale=4),
            nullable=False,
            server_default="0",
        ),
        sa.Column("discount_amount", _money(), nullable=False, server_default="0"),
        sa.Column("total", _money(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        _created_at(),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("tenant_id", "sale_number", name="uq_sale_tenant_number"),
        sa.CheckConstraint("total >= 0", name="ck_sale_total_non_negative"),
    )
    op.create_index("ix_sales_tenant_created", "sales", ["tenant_id", "created_at"])
    op.create_index("ix_sales_customer", "sales", ["customer_id"])
    op.create_table(
        "sale_items",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("sale_id", sa.Uuid(), sa.ForeignKey("sales.id"), nullable=False),
        sa.Column("product_id", sa.Uuid(), sa.ForeignKey("products.id"), nullable=False),
        sa.Column(
            "product_variant_id", sa.Uuid(), sa.ForeignKey("product_variants.id"), nullable=True
        ),
        sa.Column("description", sa.String(255), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price", _money(), nullable=False),
        sa.Column("cost_price", _money(), nullable=False, server_default="0"),
        sa.Column("tax_rate", sa.Numeric(precision=5, scale=2), nullable=False),
        sa.Column("discount_type", _enum("discounttype"), nullable=True),
        sa.Column(
            "discount_value",
            sa.Numeric(precision=20, scale=4),
            nullable=False,
            server_default="0",
        ),
        sa.Column("discount_amount", _money(), nullable=False, server_default="0"),
        sa.Column("subtotal", _money(), nullable=False),
        sa.Column("tax_amount", _money(), nullable=False),
        sa.Column("total", _money(), nullable=False),
        sa.CheckConstraint("quantity > 0", name="ck_sale_item_quantity_positive"),
    )
    op.create_index("ix_sale_items_sale", "sale_items", ["sale_id"])
    op.create_table(
        "sale_payments",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("sale_id", sa.Uuid(), sa.ForeignKey("sales.id"), nullable=False),
        sa.Column("method", _enum("paymentmethod"), nullable=False),
        sa.Column("amount", _money(), nullable=False),
        sa.Column("reference", sa.String(100), nullable=True),
        sa.CheckConstraint("amount > 0", name="ck_sale_payment_amount_positive"),
    )
    op.create_index("ix_sale_payments_sale", "sale_payments", ["sale_id"])
    op.create_table(
        "quotes",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("tenant_id", sa.Uuid(), sa.ForeignKey("tenants.id"), nullable=False),
        sa.Column("location_id", sa.Uuid(), sa.ForeignKey("locations.id"), nullable=True),
        sa.Column("customer_id", sa.Uuid(), sa.ForeignKey("customers.id"), nullable=True),
        sa.Column("quote_number", sa.String(20), nullable=False),
        sa.Column("status", _enum("quotestatus"), nullable=False, server_default="DRAFT"),
        sa.Column("subtotal", _money(), nullable=False),
        sa.Column("tax_amount", _money(), nullable=False),
        sa.Column("discount_type", _enum("discounttype"), nullable=True),
        sa.Column(
            "discount_value",
            sa.Numeric(precision=20, scale=4),
            nullable=False,
            server_default="0",
        ),
        sa.Column("discount_amount", _money(), nullable=False, server_default="0"),
        sa.Column("total", _money(), nullable=False),
        sa.Column("valid_until", sa.Date(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("converted_to_sale_id", sa.Uuid(), sa.ForeignKey("sales.id"), nullable=True),
        sa.Column("created_by", sa.Uuid(), sa.ForeignKey("users.id"), nullable=False),
        _created_at(),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("tenant_id", "quote_number", name="uq_quote_tenant_number"),
    )
    op.create_index("ix_quotes_tenant_status", "quotes", ["tenant_id", "status"])
    op.create_table(
        "quote_items",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("quote_id", sa.Uuid(), sa.ForeignKey("quotes.id"), nullable=False),
        sa.Column("product_id", sa.Uuid(), sa.ForeignKey("products.id"), nullable=False),
        sa.Column(
            "product_variant_id", sa.Uuid(), sa.ForeignKey("product_variants.id"), nullable=True
        ),
        sa.Column("description", sa.String(255), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price", _money(), nullable=False),
        sa.Column("tax_rate", sa.Numeric(precision=5, scale=2), nullable=False),
        sa.Column("discount_type", _enum("discounttype"), nullable=True),
        sa.Column(
            "discount_value",
            sa.Numeric(precision=20, scale=4),
            nullable=False,
            server_default="0",
        ),
        sa.Column("discount_amount", _money(), nullable=False, server_default="0"),
        sa.Column("subtotal", _money(), nullable=False),
        sa.Column("tax_amount", _money(), nullable=False),
        sa.Column("total", _money(), nullable=False),
        sa.CheckConstraint("quantity > 0", name="ck_quote_item_quantity_positive"),
    )
    op.create_index("ix_quote_items_quote", "quote_items", ["quote_id"])

    # ── Fiscal invoices ───────────────────────────────────────────────
    op.create_table(
        "invoices",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("tenant_id", sa.Uuid(), sa.ForeignKey("tenants.id"), nullable=False),
        sa.Column("sale_id", sa.Uuid(), sa.ForeignKey("sales.id"), nullable=False, unique=True),
        sa.Column("invoice_letter", _enum("invoiceletter"), nullable=False),
        sa.Column("voucher_type", sa.Integer(), nullable=False),
        sa.Column("point_of_sale", sa.Integer(), nullable=False),
        sa.Column("number", sa.Integer(), nullable=False),
        sa.Column("cae", sa.String(20), nullable=False),
        sa.Column("cae_expiration", sa.Date(), nullable=False),
        sa.Column("status", _enum("invoicestatus"), nullable=False, server_default="APPROVED"),
        sa.Column("net_amount", _money(), nullable=False),
        sa.Column("tax_amount", _money(), nullable=False),
        sa.Column("total", _money(), nullable=False),
        sa.Column("customer_name", sa.String(255), nullable=True),
        sa.Column("customer_doc_type", sa.Integer(), nullable=False),
        sa.Column("customer_doc_number", sa.String(20), nullable=False),
        sa.Column("authority_response", sa.JSON(), nullable=True),
        _created_at(),
        sa.UniqueConstraint(
            "tenant_id",
            "point_of_sale",
            "voucher_type",
            "number",
            name="uq_invoice_tenant_pos_type_number",
        ),
    )
    op.create_index("ix_invoices_tenant_created", "invoices", ["tenant_id", "created_at"])

    # ── Supplier invoices and payments ────────────────────────────────
    op.create_table(
        "supplier_invoices",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("tenant_id", sa.Uuid(), sa.ForeignKey("tenants.id"), nullable=False),
        sa.Column("supplier_id", sa.Uuid(), sa.ForeignKey("suppliers.id"), nullable=False),
        sa.Column(
            "purchase_order_id", sa.Uuid(), sa.ForeignKey("purchase_orders.id"), nullable=True
        ),
        sa.Column("invoice_number", sa.String(50), nullable=False),
        sa.Column("invoice_date", sa.Date(), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column("total", _money(), nullable=False),
        sa.Column("paid_amount", _money(), nullable=False, server_default="0"),
        sa.Column("balance", _money(), nullable=False),
        sa.Column(
            "status", _enum("supplierinvoicestatus"), nullable=False, server_default="PENDING"
        ),
        sa.Column("paid_date", sa.Date(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        _created_at(),
        sa.UniqueConstraint("supplier_id", "invoice_number", name="uq_supplier_invoice_number"),
        sa.CheckConstraint("paid_amount >= 0", name="ck_supplier_invoice_paid_non_negative"),
    )
    op.create_index(
        "ix_supplier_invoices_supplier_status", "supplier_invoices", ["supplier_id", "status"]
    )
    op.create_table(
        "supplier_payments",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("tenant_id", sa.Uuid(), sa.ForeignKey("tenants.id"), nullable=False),
        sa.Column("supplier_id", sa.Uuid(), sa.ForeignKey("suppliers.id"), nullable=False),
        sa.Column("payment_number", sa.String(20), nullable=False),
        sa.Column("amount", _money(), nullable=False),
        sa.Column("payment_method", _enum("paymentmethod"), nullable=False),
        sa.Column("cash_account_id", sa.Uuid(), sa.ForeignKey("cash_accounts.id"), nullable=True),
        sa.Column("payment_date", sa.Date(), nullable=False),
        sa.Column("reference", sa.String(100), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_by", sa.Uuid(), sa.ForeignKey("users.id"), nullable=False),
        _created_at(),
        sa.UniqueConstraint("tenant_id", "payment_number", name="uq_supplier_payment_number"),
        sa.CheckConstraint("amount > 0", name="ck_supplier_payment_amount_positive"),
    )
    op.create_table(
        "supplier_payment_allocations",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("payment_id", sa.Uuid(), sa.ForeignKey("supplier_payments.id"), nullable=False),
        sa.Column("invoice_id", sa.Uuid(), sa.ForeignKey("supplier_invoices.id"), nullable=False),
        sa.Column("amount", _money(), nullable=False),
        sa.CheckConstraint("amount > 0", name="ck_allocation_amount_positive"),
    )
    op.create_index("ix_allocations_payment", "supplier_payment_allocations", ["payment_id"])
    op.create_index("ix_allocations_invoice", "supplier_payment_allocations", ["invoice_id"])

    # ── Stock ledger ──────────────────────────────────────────────────
    op.create_table(
        "stock",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("tenant_id", sa.Uuid(), sa.ForeignKey("tenants.id"), nullable=False),
        sa.Column("location_id", sa.Uuid(), sa.ForeignKey("locations.id"), nullable=False),
        sa.Column("product_id", sa.Uuid(), sa.ForeignKey("products.id"), nullable=True),
        sa.Column(
            "product_variant_id", sa.Uuid(), sa.ForeignKey("product_variants.id"), nullable=True
        ),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("min_quantity", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("quantity >= 0", name="ck_stock_quantity_non_negative"),
        sa.CheckConstraint(
            "(product_id IS NULL) != (product_variant_id IS NULL)",
            name="ck_stock_product_xor_variant",
        ),
        sa.UniqueConstraint("product_id", "location_id", name="uq_stock_product_location"),
        sa.UniqueConstraint(
            "product_variant_id", "location_id", name="uq_stock_variant_location"
        ),
    )
    op.create_index("ix_stock_tenant_location", "stock", ["tenant_id", "location_id"])
    op.create_table(
        "stock_movements",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("tenant_id", sa.Uuid(), sa.ForeignKey("tenants.id"), nullable=False),
        sa.Column("stock_id", sa.Uuid(), sa.ForeignKey("stock.id"), nullable=False),
        sa.Column("location_id", sa.Uuid(), sa.ForeignKey("locations.id"), nullable=False),
        sa.Column("product_id", sa.Uuid(), sa.ForeignKey("products.id"), nullable=True),
        sa.Column(
            "product_variant_id", sa.Uuid(), sa.ForeignKey("product_variants.id"), nullable=True
        ),
        sa.Column("type", _enum("stockmovementtype"), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("quantity_before", sa.Integer(), nullable=False),
        sa.Column("quantity_after", sa.Integer(), nullable=False),
        sa.Column("reason", sa.String(255), nullable=False),
        sa.Column("sale_id", sa.Uuid(), sa.ForeignKey("sales.id"), nullable=True),
        sa.Column(
            "purchase_order_id", sa.Uuid(), sa.ForeignKey("purchase_orders.id"), nullable=True
        ),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id"), nullable=True),
        _created_at(),
        sa.CheckConstraint("quantity != 0", name="ck_stock_movement_non_zero"),
    )
    op.create_index("ix_stock_movements_stock", "stock_movements", ["stock_id"])
    op.create_index("ix_stock_movements_sale", "stock_movements", ["sale_id"])

    # ── Money ledger movements ────────────────────────────────────────
    op.create_table(
        "customer_account_movements",
        *_movement_columns(),
        sa.Column(
            "customer_account_id",
            sa.Uuid(),
            sa.ForeignKey("customer_accounts.id"),
            nullable=False,
        ),
        sa.Column("sale_id", sa.Uuid(), sa.ForeignKey("sales.id"), nullable=True),
    )
    op.create_index(
        "ix_customer_movements_account", "customer_account_movements", ["customer_account_id"]
    )
    op.create_index("ix_customer_movements_sale", "customer_account_movements", ["sale_id"])
    op.create_table(
        "cash_account_movements",
        *_movement_columns(),
        sa.Column(
            "cash_account_id", sa.Uuid(), sa.ForeignKey("cash_accounts.id"), nullable=False
        ),
        sa.Column(
            "related_account_id", sa.Uuid(), sa.ForeignKey("cash_accounts.id"), nullable=True
        ),
        sa.Column("sale_id", sa.Uuid(), sa.ForeignKey("sales.id"), nullable=True),
        sa.Column(
            "supplier_payment_id",
            sa.Uuid(),
            sa.ForeignKey("supplier_payments.id"),
            nullable=True,
        ),
    )
    op.create_index(
        "ix_cash_account_movements_account", "cash_account_movements", ["cash_account_id"]
    )
    op.create_index("ix_cash_account_movements_sale", "cash_account_movements", ["sale_id"])
    op.create_table(
        "cash_register_movements",
        *_movement_columns(),
        sa.Column(
            "cash_register_id", sa.Uuid(), sa.ForeignKey("cash_registers.id"), nullable=False
        ),
        sa.Column("sale_id", sa.Uuid(), sa.ForeignKey("sales.id"), nullable=True),
    )
    op.create_index(
        "ix_register_movements_register", "cash_register_movements", ["cash_register_id"]
    )
    op.create_index("ix_register_movements_sale", "cash_register_movements", ["sale_id"])
    op.create_table(
        "petty_cash_movements",
        *_movement_columns(),
        sa.Column(
            "petty_cash_fund_id", sa.Uuid(), sa.ForeignKey("petty_cash_funds.id"), nullable=False
        ),
        sa.Column("cash_account_id", sa.Uuid(), sa.ForeignKey("cash_accounts.id"), nullable=True),
    )
    op.create_index("ix_petty_cash_movements_fund", "petty_cash_movements", ["petty_cash_fund_id"])
    op.create_table(
        "supplier_account_movements",
        *_movement_columns(),
        sa.Column(
            "supplier_account_id",
            sa.Uuid(),
            sa.ForeignKey("supplier_accounts.id"),
            nullable=False,
        ),
        sa.Column(
            "supplier_payment_id",
            sa.Uuid(),
            sa.ForeignKey("supplier_payments.id"),
            nullable=True,
        ),
        sa.Column(
            "supplier_invoice_id",
            sa.Uuid(),
            sa.ForeignKey("supplier_invoices.id"),
            nullable=True,
        ),
    )
    op.create_index(
        "ix_supplier_movements_account", "supplier_account_movements", ["supplier_account_id"]
    )
    op.create_index(
        "ix_supplier_movements_payment", "supplier_account_movements", ["supplier_payment_id"]
    )


def downgrade() -> None:
    for table in (
        "supplier_account_movements",
        "petty_cash_movements",
        "cash_register_movements",
        "cash_account_movements",
        "customer_account_movements",
        "stock_movements",
        "stock",
        "supplier_payment_allocations",
        "supplier_payments",
        "supplier_invoices",
        "invoices",
        "quote_items",
        "quotes",
        "sale_payments",
        "sale_items",
        "sales",
        "purchase_order_items",
        "purchase_orders",
        "supplier_accounts",
        "suppliers",
        "petty_cash_funds",
        "cash_registers",
        "payment_method_accounts",
        "cash_accounts",
        "customer_accounts",
        "customers",
        "product_variants",
        "products",
        "audit_logs",
        "users",
        "locations",
        "tenants",
    ):
        op.drop_table(table)

    bind = op.get_bind()
    for name in ENUMS:
        postgresql.ENUM(name=name).drop(bind, checkfirst=True)
