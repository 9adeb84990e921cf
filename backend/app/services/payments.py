"""Payment reconciliation and routing.

A document is settled by a list of payment entries whose sum must match its
total. Entries are then booked where the money actually lands:

* ``ACCOUNT``: charged to the customer's running account (credit limit
  enforced).
* ``CASH``: income on the open cash register.
* card, transfer, QR and check: income on the treasury account mapped to
  the method for the tenant. An unmapped method is reported back (and
  logged) unless the tenant requires every method to be mapped.
* ``OTHER``: recorded on the document only.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from backend.app.core.config import settings
from backend.app.core.exceptions import (
    AccountInactive,
    CustomerRequired,
    PaymentMethodNotMapped,
    PaymentsMismatch,
)
from backend.app.models.customer import CustomerAccount
from backend.app.models.mixins import MovementType
from backend.app.models.organization import Tenant
from backend.app.models.treasury import (
    CashAccount,
    CashRegister,
    PaymentMethod,
    PaymentMethodAccount,
)
from backend.app.services import ledger
from backend.app.services.customer_accounts import get_or_create_account

logger = logging.getLogger(__name__)

ZERO = Decimal("0")

NON_CASH_METHODS = frozenset(
    {
        PaymentMethod.DEBIT_CARD,
        PaymentMethod.CREDIT_CARD,
        PaymentMethod.TRANSFER,
        PaymentMethod.QR,
        PaymentMethod.CHECK,
    }
)


@dataclass(frozen=True)
class PaymentEntry:
    method: PaymentMethod
    amount: Decimal
    reference: str | None = None


@dataclass
class PostingResult:
    customer_movement_id: UUID | None = None
    register_movement_id: UUID | None = None
    treasury_movement_ids: list[UUID] = field(default_factory=list)
    unmapped_methods: list[PaymentMethod] = field(default_factory=list)


# ─── Validation ───────────────────────────────────────────────────────────────


def resolve_entries(
    entries: list[PaymentEntry] | None,
    legacy_method: PaymentMethod | None,
    total: Decimal,
) -> list[PaymentEntry]:
    """Normalize input: an explicit list wins, else one entry for the total."""
    if entries:
        return list(entries)
    return [PaymentEntry(method=legacy_method or PaymentMethod.CASH, amount=total)]


def reconcile(entries: list[PaymentEntry], total: Decimal) -> Decimal:
    for entry in entries:
        if entry.amount <= 0:
            raise ValueError("Payment amounts must be greater than zero")
    paid = sum((entry.amount for entry in entries), ZERO)
    if abs(paid - total) >= settings.MONEY_TOLERANCE:
        raise PaymentsMismatch(paid, total)
    return paid


def check_account_entries(entries: list[PaymentEntry], customer_id: UUID | None) -> None:
    if customer_id is None and any(e.method == PaymentMethod.ACCOUNT for e in entries):
        raise CustomerRequired()


# ─── Routing ──────────────────────────────────────────────────────────────────


def find_mapped_account(
    db: Session, *, tenant_id: UUID, method: PaymentMethod
) -> CashAccount | None:
    mapping = (
        db.query(PaymentMethodAccount)
        .filter(
            PaymentMethodAccount.tenant_id == tenant_id,
            PaymentMethodAccount.payment_method == method,
        )
        .first()
    )
    if mapping is None:
        return None
    return ledger.load_ledger(
        db, ledger.CASH_ACCOUNT, mapping.cash_account_id, tenant_id=tenant_id
    )


def post_payments(
    db: Session,
    *,
    tenant: Tenant,
    entries: list[PaymentEntry],
    document_number: str,
    customer_id: UUID | None,
    cash_register: CashRegister | None,
    user_id: UUID,
    sale_id: UUID | None = None,
) -> PostingResult:
    """Book reconciled entries to their ledgers. Caller owns the transaction."""
    result = PostingResult()
    by_method: dict[PaymentMethod, Decimal] = defaultdict(lambda: ZERO)
    for entry in entries:
        by_method[entry.method] += entry.amount

    account_total = by_method.pop(PaymentMethod.ACCOUNT, ZERO)
    if account_total > 0:
        if customer_id is None:
            raise CustomerRequired()
        account: CustomerAccount = get_or_create_account(
            db, tenant_id=tenant.id, customer_id=customer_id
        )
        if not account.is_active:
            raise AccountInactive(ledger.CUSTOMER_ACCOUNT.name, account.id)
        movement = ledger.apply_delta(
            db,
            account,
            -account_total,
            MovementType.CHARGE,
            f"Sale {document_number}",
            user_id=user_id,
            reference=document_number,
            sale_id=sale_id,
        )
        result.customer_movement_id = movement.id

    cash_total = by_method.pop(PaymentMethod.CASH, ZERO)
    if cash_total > 0 and cash_register is not None:
        movement = ledger.apply_delta(
            db,
            cash_register,
            cash_total,
            MovementType.SALE_INCOME,
            f"Sale {document_number}",
            user_id=user_id,
            reference=document_number,
            sale_id=sale_id,
        )
        result.register_movement_id = movement.id

    for method, amount in by_method.items():
        if method not in NON_CASH_METHODS or amount <= 0:
            continue
        cash_account = find_mapped_account(db, tenant_id=tenant.id, method=method)
        if cash_account is None:
            if tenant.require_payment_mapping:
                raise PaymentMethodNotMapped(method.value)
            logger.warning(
                "No treasury account mapped for %s (tenant %s); %s of %s left unbooked",
                method.value,
                tenant.id,
                amount,
                document_number,
            )
            result.unmapped_methods.append(method)
            continue
        movement = ledger.apply_delta(
            db,
            cash_account,
            amount,
            MovementType.SALE_INCOME,
            f"Sale {document_number} ({method.value})",
            user_id=user_id,
            reference=document_number,
            sale_id=sale_id,
        )
        result.treasury_movement_ids.append(movement.id)

    return result
