"""Typed settlement errors.

Every business-rule failure subclasses ``ValueError`` (services have always
signalled bad business input that way) and carries the figures a caller needs
to correct the input in ``details``.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any


def _fmt(value: Decimal) -> str:
    return f"{value:.2f}"


class SettlementError(ValueError):
    code = "SETTLEMENT_ERROR"
    status_code = 400

    def __init__(self, message: str, **details: Any) -> None:
        self.details = details
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"error": self.code, "detail": str(self)}
        for key, value in self.details.items():
            payload[key] = str(value) if isinstance(value, Decimal) else value
        return payload


class NotFound(SettlementError):
    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, entity: str, entity_id: object) -> None:
        super().__init__(f"{entity} {entity_id} not found", entity=entity, id=str(entity_id))


class InsufficientStock(SettlementError):
    code = "INSUFFICIENT_STOCK"

    def __init__(self, item_name: str, available: int, requested: int) -> None:
        super().__init__(
            f"Insufficient stock for {item_name}: {available} available, {requested} requested",
            item=item_name,
            available=available,
            requested=requested,
        )


class PaymentsMismatch(SettlementError):
    code = "PAYMENTS_MISMATCH"

    def __init__(self, payments_total: Decimal, document_total: Decimal) -> None:
        super().__init__(
            f"Payments total ({_fmt(payments_total)}) does not match "
            f"document total ({_fmt(document_total)})",
            payments_total=payments_total,
            document_total=document_total,
        )


class CreditLimitExceeded(SettlementError):
    code = "CREDIT_LIMIT_EXCEEDED"

    def __init__(
        self,
        credit_limit: Decimal,
        balance: Decimal,
        requested: Decimal,
    ) -> None:
        available = credit_limit + balance
        super().__init__(
            f"Credit limit exceeded. Available: {_fmt(available)}",
            credit_limit=credit_limit,
            balance=balance,
            requested=requested,
            available=available,
        )


class AccountInactive(SettlementError):
    code = "ACCOUNT_INACTIVE"

    def __init__(self, kind: str, ledger_id: object) -> None:
        super().__init__(f"{kind} {ledger_id} is inactive", kind=kind, id=str(ledger_id))


class InsufficientFunds(SettlementError):
    code = "INSUFFICIENT_FUNDS"

    def __init__(self, kind: str, available: Decimal, requested: Decimal) -> None:
        super().__init__(
            f"Insufficient balance in {kind}: {_fmt(available)} available, "
            f"{_fmt(requested)} requested",
            kind=kind,
            available=available,
            requested=requested,
        )


class NoOpenRegister(SettlementError):
    code = "NO_OPEN_REGISTER"

    def __init__(self) -> None:
        super().__init__("No open cash register. Open a register before settling sales.")


class RegisterClosed(SettlementError):
    code = "REGISTER_CLOSED"

    def __init__(self, register_id: object) -> None:
        super().__init__(
            f"Cash register {register_id} is closed; its cash can no longer move",
            id=str(register_id),
        )


class WithdrawalLimitExceeded(SettlementError):
    code = "WITHDRAWAL_LIMIT_EXCEEDED"
    status_code = 403

    def __init__(self, role: str, limit: Decimal, requested: Decimal) -> None:
        super().__init__(
            f"Withdrawal of {_fmt(requested)} exceeds the {role} limit of {_fmt(limit)}",
            role=role,
            limit=limit,
            requested=requested,
        )


class PaymentMethodNotMapped(SettlementError):
    code = "PAYMENT_METHOD_NOT_MAPPED"

    def __init__(self, method: str) -> None:
        super().__init__(
            f"Payment method {method} has no treasury account configured",
            method=method,
        )


class InvalidStatusTransition(SettlementError):
    code = "INVALID_STATUS"

    def __init__(self, entity: str, current: str, requested: str) -> None:
        super().__init__(
            f"{entity} with status {current} cannot move to {requested}",
            current=current,
            requested=requested,
        )


class ConflictError(SettlementError):
    """A transient store conflict that survived the bounded retries."""

    code = "CONFLICT"
    status_code = 409

    def __init__(self, label: str, attempts: int) -> None:
        super().__init__(
            f"{label} conflicted with a concurrent operation; try again",
            attempts=attempts,
            retryable=True,
        )


class FiscalAuthorityError(Exception):
    """Rejection or transport failure from the fiscal authority."""

    def __init__(
        self,
        message: str,
        *,
        codes: list[str] | None = None,
        observations: list[str] | None = None,
    ) -> None:
        self.codes = codes or []
        self.observations = observations or []
        super().__init__(message)


class CustomerRequired(SettlementError):
    code = "CUSTOMER_REQUIRED"

    def __init__(self) -> None:
        super().__init__("Account payments require a customer")
