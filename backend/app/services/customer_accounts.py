from __future__ import annotations

import logging
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from backend.app.core.context import SessionContext
from backend.app.core.exceptions import NotFound
from backend.app.models.customer import Customer, CustomerAccount, CustomerAccountMovement
from backend.app.models.mixins import MovementType
from backend.app.services import ledger
from backend.app.services.audit import log_action

logger = logging.getLogger(__name__)


def get_customer(db: Session, *, tenant_id: UUID, customer_id: UUID) -> Customer:
    customer = (
        db.query(Customer)
        .filter(Customer.id == customer_id, Customer.tenant_id == tenant_id)
        .first()
    )
    if customer is None:
        raise NotFound("Customer", customer_id)
    return customer


def get_or_create_account(
    db: Session, *, tenant_id: UUID, customer_id: UUID
) -> CustomerAccount:
    """Return the customer's running account, opening one at zero if absent."""
    get_customer(db, tenant_id=tenant_id, customer_id=customer_id)
    account = (
        db.query(CustomerAccount)
        .filter(
            CustomerAccount.customer_id == customer_id,
            CustomerAccount.tenant_id == tenant_id,
        )
        .with_for_update()
        .first()
    )
    if account is None:
        account = CustomerAccount(
            tenant_id=tenant_id,
            customer_id=customer_id,
            current_balance=Decimal("0"),
            credit_limit=Decimal("0"),
        )
        db.add(account)
        db.flush()
        logger.info("Opened account %s for customer %s", account.id, customer_id)
    return account


def get_account_statement(
    db: Session, *, tenant_id: UUID, customer_id: UUID, limit: int = 50
) -> tuple[CustomerAccount, list[CustomerAccountMovement]]:
    account = get_or_create_account(db, tenant_id=tenant_id, customer_id=customer_id)
    movements = (
        db.query(CustomerAccountMovement)
        .filter(CustomerAccountMovement.customer_account_id == account.id)
        .order_by(CustomerAccountMovement.created_at.desc())
        .limit(limit)
        .all()
    )
    return account, movements


def update_account(
    db: Session,
    ctx: SessionContext,
    customer_id: UUID,
    *,
    credit_limit: Decimal | None = None,
    is_active: bool | None = None,
) -> CustomerAccount:
    account = get_or_create_account(db, tenant_id=ctx.tenant_id, customer_id=customer_id)
    changes: dict[str, object] = {}
    if credit_limit is not None:
        if credit_limit < 0:
            raise ValueError("Credit limit cannot be negative")
        account.credit_limit = credit_limit
        changes["credit_limit"] = credit_limit
    if is_active is not None:
        account.is_active = is_active
        changes["is_active"] = is_active
    log_action(
        db,
        tenant_id=ctx.tenant_id,
        user_id=ctx.user_id,
        action="CUSTOMER_ACCOUNT_UPDATED",
        resource_type="customer_accounts",
        resource_id=str(account.id),
        changes=changes,
        ip_address=ctx.ip_address,
    )
    db.flush()
    return account


def record_account_payment(
    db: Session,
    ctx: SessionContext,
    customer_id: UUID,
    amount: Decimal,
    *,
    cash_account_id: UUID | None = None,
    notes: str | None = None,
) -> CustomerAccountMovement:
    """Customer pays down their balance; optionally lands in a treasury account."""
    if amount <= 0:
        raise ValueError("Payment amount must be greater than zero")

    account = get_or_create_account(db, tenant_id=ctx.tenant_id, customer_id=customer_id)
    correlation_id = ledger.new_correlation_id("PAY")
    concept = notes or "Account payment"
    movement = ledger.apply_delta(
        db,
        account,
        amount,
        MovementType.PAYMENT,
        concept,
        user_id=ctx.user_id,
        correlation_id=correlation_id,
    )
    if cash_account_id is not None:
        cash_account = ledger.load_ledger(
            db, ledger.CASH_ACCOUNT, cash_account_id, tenant_id=ctx.tenant_id
        )
        ledger.apply_delta(
            db,
            cash_account,
            amount,
            MovementType.INCOME,
            concept,
            user_id=ctx.user_id,
            correlation_id=correlation_id,
        )

    log_action(
        db,
        tenant_id=ctx.tenant_id,
        user_id=ctx.user_id,
        action="CUSTOMER_ACCOUNT_PAYMENT",
        resource_type="customer_accounts",
        resource_id=str(account.id),
        changes={"amount": amount, "balance": account.current_balance},
        ip_address=ctx.ip_address,
    )
    return movement


def charge_account(
    db: Session,
    ctx: SessionContext,
    customer_id: UUID,
    amount: Decimal,
    *,
    concept: str,
    reference: str | None = None,
) -> CustomerAccountMovement:
    """Manual charge (debt) on the running account; the credit limit applies."""
    if amount <= 0:
        raise ValueError("Charge amount must be greater than zero")

    account = get_or_create_account(db, tenant_id=ctx.tenant_id, customer_id=customer_id)
    movement = ledger.apply_delta(
        db,
        account,
        -amount,
        MovementType.CHARGE,
        concept,
        user_id=ctx.user_id,
        reference=reference,
    )
    log_action(
        db,
        tenant_id=ctx.tenant_id,
        user_id=ctx.user_id,
        action="CUSTOMER_ACCOUNT_CHARGE",
        resource_type="customer_accounts",
        resource_id=str(account.id),
        changes={"amount": amount, "balance": account.current_balance},
        ip_address=ctx.ip_address,
    )
    return movement


def adjust_account(
    db: Session,
    ctx: SessionContext,
    customer_id: UUID,
    amount: Decimal,
    *,
    concept: str,
) -> CustomerAccountMovement:
    """Signed correction of the balance. Not subject to the credit limit."""
    account = get_or_create_account(db, tenant_id=ctx.tenant_id, customer_id=customer_id)
    movement = ledger.apply_delta(
        db,
        account,
        amount,
        MovementType.ADJUSTMENT,
        concept,
        user_id=ctx.user_id,
        enforce_limits=False,
    )
    log_action(
        db,
        tenant_id=ctx.tenant_id,
        user_id=ctx.user_id,
        action="CUSTOMER_ACCOUNT_ADJUSTMENT",
        resource_type="customer_accounts",
        resource_id=str(account.id),
        changes={"amount": amount, "concept": concept, "balance": account.current_balance},
        ip_address=ctx.ip_address,
    )
    return movement
