"""Tests for balance ledgers: posting, voids, transfers and customer accounts."""
from __future__ import annotations

import uuid
from decimal import Decimal

import pytest
from sqlalchemy.orm import Session

from backend.app.core.context import SessionContext
from backend.app.core.exceptions import (
    AccountInactive,
    CreditLimitExceeded,
    InsufficientFunds,
    NotFound,
)
from backend.app.models.audit import AuditLog
from backend.app.models.customer import Customer, CustomerAccountMovement
from backend.app.models.mixins import MovementType
from backend.app.models.organization import Tenant
from backend.app.models.treasury import CashAccount, CashAccountMovement
from backend.app.services import customer_accounts, ledger

D = Decimal


class TestApplyDelta:
    def test_movement_records_before_and_after(
        self, db: Session, ctx: SessionContext, bank_account: CashAccount
    ) -> None:
        movement = ledger.apply_delta(
            db, bank_account, D("-250.00"), MovementType.EXPENSE, "Alquiler", user_id=ctx.user_id
        )
        assert movement.balance_before == D("5000.00")
        assert movement.balance_after == D("4750.00")
        assert movement.balance_after == movement.balance_before + movement.amount
        assert bank_account.current_balance == D("4750.00")

    def test_zero_amount_rejected(
        self, db: Session, ctx: SessionContext, bank_account: CashAccount
    ) -> None:
        with pytest.raises(ValueError, match="zero"):
            ledger.apply_delta(
                db, bank_account, D("0"), MovementType.INCOME, "nada", user_id=ctx.user_id
            )

    def test_treasury_cannot_go_negative(
        self, db: Session, ctx: SessionContext, bank_account: CashAccount
    ) -> None:
        with pytest.raises(InsufficientFunds) as exc_info:
            ledger.apply_delta(
                db, bank_account, D("-5000.01"), MovementType.EXPENSE, "x", user_id=ctx.user_id
            )
        assert exc_info.value.details["available"] == D("5000.00")

    def test_limits_can_be_bypassed_for_reversals(
        self, db: Session, ctx: SessionContext, wallet_account: CashAccount
    ) -> None:
        movement = ledger.apply_delta(
            db,
            wallet_account,
            D("-10.00"),
            MovementType.REVERSAL,
            "reversal",
            user_id=ctx.user_id,
            enforce_limits=False,
        )
        assert movement.balance_after == D("-10.00")

    def test_load_ledger_is_tenant_scoped(
        self, db: Session, bank_account: CashAccount, other_tenant: Tenant
    ) -> None:
        with pytest.raises(NotFound):
            ledger.load_ledger(db, ledger.CASH_ACCOUNT, bank_account.id, tenant_id=other_tenant.id)

    def test_inactive_ledger_rejected(
        self, db: Session, ctx: SessionContext, bank_account: CashAccount
    ) -> None:
        bank_account.is_active = False
        db.flush()
        with pytest.raises(AccountInactive):
            ledger.load_ledger(db, ledger.CASH_ACCOUNT, bank_account.id, tenant_id=ctx.tenant_id)


class TestVoidMovement:
    def test_void_posts_reversal_and_deletes_original(
        self, db: Session, ctx: SessionContext, bank_account: CashAccount
    ) -> None:
        original = ledger.apply_delta(
            db,
            bank_account,
            D("300.00"),
            MovementType.INCOME,
            "Cobro",
            user_id=ctx.user_id,
            correlation_id="PAY-1",
        )
        original_id = original.id
        reversal = ledger.void_movement(db, original, user_id=ctx.user_id)
        db.commit()

        assert reversal.type == MovementType.REVERSAL
        assert reversal.amount == D("-300.00")
        assert reversal.correlation_id == "PAY-1"
        assert reversal.concept == "Reversal: Cobro"
        assert db.get(CashAccountMovement, original_id) is None
        db.refresh(bank_account)
        assert bank_account.current_balance == D("5000.00")


class TestTransferFunds:
    def test_transfer_shares_correlation_id(
        self,
        db: Session,
        ctx: SessionContext,
        bank_account: CashAccount,
        wallet_account: CashAccount,
    ) -> None:
        result = ledger.transfer_funds(
            db, bank_account, wallet_account, D("1200.00"), "Fondeo", user_id=ctx.user_id
        )
        assert result.outgoing.correlation_id == result.incoming.correlation_id
        assert result.correlation_id.startswith("TRF-")
        assert result.outgoing.type == MovementType.TRANSFER_OUT
        assert result.incoming.type == MovementType.TRANSFER_IN
        assert bank_account.current_balance == D("3800.00")
        assert wallet_account.current_balance == D("1200.00")

    def test_transfer_to_self_rejected(
        self, db: Session, ctx: SessionContext, bank_account: CashAccount
    ) -> None:
        with pytest.raises(ValueError, match="different"):
            ledger.transfer_funds(
                db, bank_account, bank_account, D("1.00"), "x", user_id=ctx.user_id
            )

    def test_overdraft_writes_nothing(
        self,
        db: Session,
        ctx: SessionContext,
        bank_account: CashAccount,
        wallet_account: CashAccount,
    ) -> None:
        with pytest.raises(InsufficientFunds):
            ledger.transfer_funds(
                db, wallet_account, bank_account, D("1.00"), "x", user_id=ctx.user_id
            )
        db.rollback()
        assert db.query(CashAccountMovement).filter(
            CashAccountMovement.type == MovementType.TRANSFER_IN
        ).count() == 0

    def test_non_positive_amount_rejected(
        self,
        db: Session,
        ctx: SessionContext,
        bank_account: CashAccount,
        wallet_account: CashAccount,
    ) -> None:
        with pytest.raises(ValueError, match="greater than zero"):
            ledger.transfer_funds(
                db, bank_account, wallet_account, D("-5"), "x", user_id=ctx.user_id
            )


# ─── Customer accounts ────────────────────────────────────────────────────────


class TestCustomerAccounts:
    def test_account_is_opened_on_first_use(
        self, db: Session, ctx: SessionContext, customer: Customer
    ) -> None:
        account, movements = customer_accounts.get_account_statement(
            db, tenant_id=ctx.tenant_id, customer_id=customer.id
        )
        assert account.current_balance == D("0")
        assert account.credit_limit == D("0")
        assert movements == []

    def test_charge_respects_credit_limit(
        self, db: Session, ctx: SessionContext, customer: Customer
    ) -> None:
        customer_accounts.update_account(db, ctx, customer.id, credit_limit=D("500.00"))
        customer_accounts.charge_account(db, ctx, customer.id, D("400.00"), concept="Fiado")

        with pytest.raises(CreditLimitExceeded) as exc_info:
            customer_accounts.charge_account(db, ctx, customer.id, D("100.01"), concept="Fiado")
        assert exc_info.value.details["available"] == D("100.00")

    def test_rejected_charge_reports_headroom_and_leaves_balance(
        self, db: Session, ctx: SessionContext, customer: Customer
    ) -> None:
        customer_accounts.update_account(db, ctx, customer.id, credit_limit=D("1000.00"))
        db.commit()

        with pytest.raises(CreditLimitExceeded) as exc_info:
            customer_accounts.charge_account(db, ctx, customer.id, D("1500.00"), concept="Fiado")
        assert exc_info.value.details["available"] == D("1000.00")
        assert str(exc_info.value) == "Credit limit exceeded. Available: 1000.00"

        db.rollback()
        account, movements = customer_accounts.get_account_statement(
            db, tenant_id=ctx.tenant_id, customer_id=customer.id
        )
        assert account.current_balance == D("0")
        assert account.credit_limit == D("1000.00")
        assert movements == []

    def test_zero_credit_limit_is_unlimited(
        self, db: Session, ctx: SessionContext, customer: Customer
    ) -> None:
        movement = customer_accounts.charge_account(
            db, ctx, customer.id, D("99999.00"), concept="Fiado"
        )
        assert movement.balance_after == D("-99999.00")

    def test_payment_lands_in_treasury_with_shared_correlation(
        self,
        db: Session,
        ctx: SessionContext,
        customer: Customer,
        bank_account: CashAccount,
    ) -> None:
        customer_accounts.charge_account(db, ctx, customer.id, D("300.00"), concept="Fiado")
        movement = customer_accounts.record_account_payment(
            db, ctx, customer.id, D("120.00"), cash_account_id=bank_account.id
        )
        db.commit()

        assert movement.type == MovementType.PAYMENT
        assert movement.balance_after == D("-180.00")
        income = (
            db.query(CashAccountMovement)
            .filter(CashAccountMovement.correlation_id == movement.correlation_id)
            .one()
        )
        assert income.amount == D("120.00")
        assert income.type == MovementType.INCOME

    def test_adjustment_ignores_credit_limit(
        self, db: Session, ctx: SessionContext, customer: Customer
    ) -> None:
        customer_accounts.update_account(db, ctx, customer.id, credit_limit=D("10.00"))
        movement = customer_accounts.adjust_account(
            db, ctx, customer.id, D("-50.00"), concept="Corrección"
        )
        assert movement.type == MovementType.ADJUSTMENT
        assert movement.balance_after == D("-50.00")

    def test_negative_credit_limit_rejected(
        self, db: Session, ctx: SessionContext, customer: Customer
    ) -> None:
        with pytest.raises(ValueError, match="negative"):
            customer_accounts.update_account(db, ctx, customer.id, credit_limit=D("-1"))

    def test_unknown_customer(self, db: Session, ctx: SessionContext) -> None:
        with pytest.raises(NotFound):
            customer_accounts.charge_account(db, ctx, uuid.uuid4(), D("1"), concept="x")

    def test_operations_are_audited(
        self, db: Session, ctx: SessionContext, customer: Customer
    ) -> None:
        customer_accounts.charge_account(db, ctx, customer.id, D("10.00"), concept="Fiado")
        db.flush()
        log = db.query(AuditLog).filter(AuditLog.action == "CUSTOMER_ACCOUNT_CHARGE").one()
        assert log.new_values["amount"] == "10.00"
        assert db.query(CustomerAccountMovement).count() == 1
