"""Tests for treasury accounts, registers and petty cash."""
from __future__ import annotations

from decimal import Decimal

import dataclasses
from datetime import datetime, timezone

import pytest
from sqlalchemy.orm import Session

from backend.app.core.context import SessionContext
from backend.app.core.exceptions import (
    InsufficientFunds,
    InvalidStatusTransition,
    RegisterClosed,
    WithdrawalLimitExceeded,
)
from backend.app.models.mixins import MovementType
from backend.app.models.organization import Location
from backend.app.models.treasury import (
    CashAccount,
    CashAccountMovement,
    CashAccountType,
    CashRegister,
    CashRegisterMovement,
    CashWithdrawal,
    PaymentMethod,
    RegisterStatus,
    WithdrawalReason,
)
from backend.app.services import cash_registers, petty_cash, treasury

D = Decimal


# ─── Accounts ─────────────────────────────────────────────────────────────────


class TestCashAccounts:
    def test_opening_balance_is_a_movement(
        self, db: Session, bank_account: CashAccount
    ) -> None:
        (movement,) = db.query(CashAccountMovement).all()
        assert movement.type == MovementType.OPENING
        assert movement.balance_after == D("5000.00")

    def test_duplicate_name_rejected(
        self, db: Session, ctx: SessionContext, bank_account: CashAccount
    ) -> None:
        with pytest.raises(ValueError, match="already exists"):
            treasury.create_cash_account(
                db, ctx, name="Banco Nación", account_type=CashAccountType.BANK
            )

    @pytest.mark.parametrize(
        "movement_type, expected",
        [
            (MovementType.INCOME, D("5100.00")),
            (MovementType.DEPOSIT, D("5100.00")),
            (MovementType.EXPENSE, D("4900.00")),
            (MovementType.WITHDRAWAL, D("4900.00")),
        ],
    )
    def test_manual_movements(
        self,
        db: Session,
        ctx: SessionContext,
        bank_account: CashAccount,
        movement_type: MovementType,
        expected: Decimal,
    ) -> None:
        treasury.record_account_movement(
            db,
            ctx,
            bank_account.id,
            movement_type=movement_type,
            amount=D("100.00"),
            concept="Manual",
        )
        assert bank_account.current_balance == expected

    def test_manual_movement_type_is_restricted(
        self, db: Session, ctx: SessionContext, bank_account: CashAccount
    ) -> None:
        with pytest.raises(ValueError, match="Invalid movement type"):
            treasury.record_account_movement(
                db,
                ctx,
                bank_account.id,
                movement_type=MovementType.SALE_INCOME,
                amount=D("1.00"),
                concept="x",
            )

    def test_cash_cannot_be_mapped(
        self, db: Session, ctx: SessionContext, bank_account: CashAccount
    ) -> None:
        with pytest.raises(ValueError, match="not routed"):
            treasury.set_payment_method_account(db, ctx, PaymentMethod.CASH, bank_account.id)

    def test_transfer_between_accounts(
        self,
        db: Session,
        ctx: SessionContext,
        bank_account: CashAccount,
        wallet_account: CashAccount,
    ) -> None:
        result = treasury.transfer_between_accounts(
            db,
            ctx,
            from_account_id=bank_account.id,
            to_account_id=wallet_account.id,
            amount=D("750.00"),
            concept="Fondeo billetera",
        )
        db.commit()
        assert result.outgoing.related_account_id == wallet_account.id
        assert result.incoming.related_account_id == bank_account.id
        db.refresh(bank_account)
        db.refresh(wallet_account)
        assert bank_account.current_balance == D("4250.00")
        assert wallet_account.current_balance == D("750.00")


# ─── Registers ────────────────────────────────────────────────────────────────


class TestCashRegisters:
    def test_open_records_opening_balance(
        self, db: Session, register: CashRegister
    ) -> None:
        assert register.status == RegisterStatus.OPEN
        assert register.current_balance == D("1000.00")
        (movement,) = db.query(CashRegisterMovement).all()
        assert movement.type == MovementType.OPENING

    def test_close_records_difference(
        self, db: Session, ctx: SessionContext, register: CashRegister
    ) -> None:
        closed = cash_registers.close_register(
            db, ctx, register.id, counted_amount=D("990.00"), notes="Faltante"
        )
        assert closed.status == RegisterStatus.CLOSED
        assert closed.closing_balance == D("990.00")
        assert closed.difference == D("-10.00")

    def test_cannot_close_twice(
        self, db: Session, ctx: SessionContext, register: CashRegister
    ) -> None:
        cash_registers.close_register(db, ctx, register.id, counted_amount=D("1000.00"))
        with pytest.raises(InvalidStatusTransition):
            cash_registers.close_register(db, ctx, register.id, counted_amount=D("1000.00"))

    def test_prefers_register_at_callers_location(
        self, db: Session, ctx: SessionContext, register: CashRegister
    ) -> None:
        other = Location(tenant_id=ctx.tenant_id, name="Sucursal Norte")
        db.add(other)
        db.flush()
        cash_registers.open_register(db, ctx, location_id=other.id, name="Caja Norte")
        found = cash_registers.resolve_open_register(
            db, tenant_id=ctx.tenant_id, location_id=ctx.location_id
        )
        assert found.id == register.id

    def test_register_to_treasury_is_a_deposit(
        self,
        db: Session,
        ctx: SessionContext,
        register: CashRegister,
        bank_account: CashAccount,
    ) -> None:
        result = treasury.transfer_register_to_treasury(
            db, ctx, register.id, cash_account_id=bank_account.id, amount=D("600.00")
        )
        assert result.incoming.type == MovementType.DEPOSIT
        assert result.outgoing.type == MovementType.TRANSFER_OUT
        assert register.current_balance == D("400.00")
        assert bank_account.current_balance == D("5600.00")

    def test_register_cannot_hand_over_more_than_it_holds(
        self,
        db: Session,
        ctx: SessionContext,
        register: CashRegister,
        bank_account: CashAccount,
    ) -> None:
        with pytest.raises(InsufficientFunds):
            treasury.transfer_register_to_treasury(
                db, ctx, register.id, cash_account_id=bank_account.id, amount=D("1000.01")
            )

    def test_closed_register_cannot_transfer(
        self, db: Session, ctx: SessionContext, register: CashRegister
    ) -> None:
        cash_registers.close_register(db, ctx, register.id, counted_amount=D("1000.00"))
        with pytest.raises(InvalidStatusTransition):
            treasury.transfer_register_to_petty_cash(db, ctx, register.id, amount=D("10.00"))


# ─── Petty cash ───────────────────────────────────────────────────────────────


class TestPettyCash:
    def test_fund_is_created_on_first_use(self, db: Session, ctx: SessionContext) -> None:
        fund, movements = petty_cash.list_movements(db, tenant_id=ctx.tenant_id)
        assert fund.name == "Caja Chica"
        assert fund.current_balance == D("0")
        assert movements == []

    def test_register_funds_petty_cash(
        self, db: Session, ctx: SessionContext, register: CashRegister
    ) -> None:
        treasury.transfer_register_to_petty_cash(db, ctx, register.id, amount=D("200.00"))
        fund = petty_cash.get_or_create_fund(db, tenant_id=ctx.tenant_id)
        assert fund.current_balance == D("200.00")
        assert register.current_balance == D("800.00")

    def test_expense_cannot_overdraw(self, db: Session, ctx: SessionContext) -> None:
        with pytest.raises(InsufficientFunds):
            petty_cash.record_movement(
                db, ctx, movement_type=MovementType.EXPENSE, amount=D("1.00"), concept="Café"
            )

    def test_transfer_out_lands_as_received(
        self, db: Session, ctx: SessionContext, bank_account: CashAccount
    ) -> None:
        petty_cash.record_movement(
            db, ctx, movement_type=MovementType.INCOME, amount=D("300.00"), concept="Aporte"
        )
        movement = petty_cash.record_movement(
            db,
            ctx,
            movement_type=MovementType.TRANSFER_OUT,
            amount=D("100.00"),
            concept="Depósito",
            cash_account_id=bank_account.id,
        )
        assert movement.cash_account_id == bank_account.id
        received = (
            db.query(CashAccountMovement)
            .filter(CashAccountMovement.correlation_id == movement.correlation_id)
            .one()
        )
        assert received.type == MovementType.RECEIVED
        assert bank_account.current_balance == D("5100.00")

    def test_transfer_in_is_returned_from_account(
        self, db: Session, ctx: SessionContext, bank_account: CashAccount
    ) -> None:
        movement = petty_cash.record_movement(
            db,
            ctx,
            movement_type=MovementType.TRANSFER_IN,
            amount=D("250.00"),
            concept="Reposición",
            cash_account_id=bank_account.id,
        )
        assert movement.balance_after == D("250.00")
        returned = (
            db.query(CashAccountMovement)
            .filter(CashAccountMovement.correlation_id == movement.correlation_id)
            .one()
        )
        assert returned.type == MovementType.RETURNED
        assert returned.amount == D("-250.00")

    def test_transfer_needs_account(self, db: Session, ctx: SessionContext) -> None:
        with pytest.raises(ValueError, match="require a cash account"):
            petty_cash.record_movement(
                db, ctx, movement_type=MovementType.TRANSFER_IN, amount=D("1"), concept="x"
            )


# ─── Register transactions ────────────────────────────────────────────────────


class TestRegisterTransactions:
    def test_income_and_expense_move_the_till(
        self, db: Session, ctx: SessionContext, register: CashRegister
    ) -> None:
        income = cash_registers.record_register_movement(
            db,
            ctx,
            register.id,
            movement_type=MovementType.INCOME,
            amount=D("150.00"),
            concept="Cambio",
        )
        expense = cash_registers.record_register_movement(
            db,
            ctx,
            register.id,
            movement_type=MovementType.EXPENSE,
            amount=D("40.00"),
            concept="Artículos de limpieza",
            reference="T-88",
        )
        db.commit()

        assert income.balance_after == D("1150.00")
        assert expense.amount == D("-40.00")
        assert expense.balance_after == D("1110.00")
        assert register.current_balance == D("1110.00")
        listed = cash_registers.list_register_movements(
            db, tenant_id=ctx.tenant_id, register_id=register.id
        )
        assert [m.type for m in listed] == [
            MovementType.OPENING,
            MovementType.INCOME,
            MovementType.EXPENSE,
        ]

    def test_expense_cannot_overdraw(
        self, db: Session, ctx: SessionContext, register: CashRegister
    ) -> None:
        with pytest.raises(InsufficientFunds):
            cash_registers.record_register_movement(
                db,
                ctx,
                register.id,
                movement_type=MovementType.EXPENSE,
                amount=D("1000.01"),
                concept="x",
            )
        db.rollback()
        assert db.query(CashRegisterMovement).count() == 1

    def test_only_income_or_expense(
        self, db: Session, ctx: SessionContext, register: CashRegister
    ) -> None:
        with pytest.raises(ValueError, match="Invalid movement type"):
            cash_registers.record_register_movement(
                db,
                ctx,
                register.id,
                movement_type=MovementType.SALE_INCOME,
                amount=D("1.00"),
                concept="x",
            )

    def test_closed_register_takes_no_transactions(
        self, db: Session, ctx: SessionContext, register: CashRegister
    ) -> None:
        cash_registers.close_register(db, ctx, register.id, counted_amount=D("1000.00"))
        with pytest.raises(RegisterClosed):
            cash_registers.record_register_movement(
                db,
                ctx,
                register.id,
                movement_type=MovementType.INCOME,
                amount=D("1.00"),
                concept="x",
            )


# ─── Withdrawals ──────────────────────────────────────────────────────────────


def _withdraw(
    db: Session,
    ctx: SessionContext,
    register: CashRegister,
    amount: str,
    destination: CashAccount | None = None,
) -> CashWithdrawal:
    withdrawal = cash_registers.withdraw_cash(
        db,
        ctx,
        register.id,
        amount=D(amount),
        reason=WithdrawalReason.BANK_DEPOSIT,
        concept="Depósito del turno mañana",
        recipient_name="Laura Gómez",
        destination_account_id=destination.id if destination else None,
    )
    db.commit()
    return withdrawal


class TestWithdrawals:
    def test_withdrawal_to_treasury_shares_correlation(
        self,
        db: Session,
        ctx: SessionContext,
        register: CashRegister,
        bank_account: CashAccount,
    ) -> None:
        withdrawal = _withdraw(db, ctx, register, "400.00", bank_account)

        today = datetime.now(timezone.utc)
        assert withdrawal.withdrawal_number == f"WD-{today:%Y%m%d}-001"
        db.refresh(register)
        db.refresh(bank_account)
        assert register.current_balance == D("600.00")
        assert bank_account.current_balance == D("5400.00")

        out = (
            db.query(CashRegisterMovement)
            .filter(CashRegisterMovement.correlation_id == withdrawal.correlation_id)
            .one()
        )
        landed = (
            db.query(CashAccountMovement)
            .filter(CashAccountMovement.correlation_id == withdrawal.correlation_id)
            .one()
        )
        assert out.type == MovementType.WITHDRAWAL
        assert out.amount == D("-400.00")
        assert out.concept == "BANK_DEPOSIT: Depósito del turno mañana - Recipient: Laura Gómez"
        assert landed.type == MovementType.RECEIVED
        assert landed.reference == withdrawal.withdrawal_number

    def test_numbers_follow_each_other(
        self, db: Session, ctx: SessionContext, register: CashRegister
    ) -> None:
        first = _withdraw(db, ctx, register, "10.00")
        second = _withdraw(db, ctx, register, "10.00")
        assert first.withdrawal_number.endswith("-001")
        assert second.withdrawal_number.endswith("-002")
        listed = cash_registers.list_withdrawals(
            db, tenant_id=ctx.tenant_id, register_id=register.id
        )
        assert {w.id for w in listed} == {first.id, second.id}

    def test_cashier_limit(
        self, db: Session, ctx: SessionContext, register: CashRegister
    ) -> None:
        cashier = dataclasses.replace(ctx, role="CASHIER")
        _withdraw(db, cashier, register, "500.00")
        with pytest.raises(WithdrawalLimitExceeded) as exc_info:
            _withdraw(db, cashier, register, "500.01")
        assert exc_info.value.status_code == 403
        assert exc_info.value.details["limit"] == D("500")
        db.rollback()
        db.refresh(register)
        assert register.current_balance == D("500.00")

    def test_withdrawal_cannot_overdraw_register(
        self, db: Session, ctx: SessionContext, register: CashRegister
    ) -> None:
        with pytest.raises(InsufficientFunds):
            _withdraw(db, ctx, register, "1000.01")
        db.rollback()
        assert db.query(CashWithdrawal).count() == 0

    def test_void_restores_both_sides(
        self,
        db: Session,
        ctx: SessionContext,
        register: CashRegister,
        bank_account: CashAccount,
    ) -> None:
        withdrawal = _withdraw(db, ctx, register, "400.00", bank_account)

        voided = cash_registers.void_withdrawal(db, ctx, withdrawal.id)
        db.commit()

        assert voided.voided_at is not None
        assert voided.voided_by == ctx.user_id
        db.refresh(register)
        db.refresh(bank_account)
        assert register.current_balance == D("1000.00")
        assert bank_account.current_balance == D("5000.00")
        register_side = (
            db.query(CashRegisterMovement)
            .filter(CashRegisterMovement.correlation_id == withdrawal.correlation_id)
            .one()
        )
        assert register_side.type == MovementType.REVERSAL
        assert register_side.amount == D("400.00")
        assert register_side.concept == f"Void of withdrawal {withdrawal.withdrawal_number}"
        account_side = (
            db.query(CashAccountMovement)
            .filter(CashAccountMovement.correlation_id == withdrawal.correlation_id)
            .one()
        )
        assert account_side.type == MovementType.REVERSAL
        assert account_side.amount == D("-400.00")

    def test_cannot_void_twice(
        self, db: Session, ctx: SessionContext, register: CashRegister
    ) -> None:
        withdrawal = _withdraw(db, ctx, register, "50.00")
        cash_registers.void_withdrawal(db, ctx, withdrawal.id)
        db.commit()
        with pytest.raises(InvalidStatusTransition):
            cash_registers.void_withdrawal(db, ctx, withdrawal.id)

    def test_void_after_close_rejected(
        self, db: Session, ctx: SessionContext, register: CashRegister
    ) -> None:
        withdrawal = _withdraw(db, ctx, register, "400.00")
        cash_registers.close_register(db, ctx, register.id, counted_amount=D("600.00"))
        db.commit()
        with pytest.raises(RegisterClosed):
            cash_registers.void_withdrawal(db, ctx, withdrawal.id)
        db.rollback()
        db.refresh(register)
        assert register.current_balance == D("600.00")

    def test_void_needs_the_cash_still_in_treasury(
        self,
        db: Session,
        ctx: SessionContext,
        register: CashRegister,
        bank_account: CashAccount,
    ) -> None:
        withdrawal = _withdraw(db, ctx, register, "400.00", bank_account)
        treasury.record_account_movement(
            db,
            ctx,
            bank_account.id,
            movement_type=MovementType.EXPENSE,
            amount=D("5001.00"),
            concept="Proveedor",
        )
        db.commit()
        with pytest.raises(InsufficientFunds):
            cash_registers.void_withdrawal(db, ctx, withdrawal.id)
