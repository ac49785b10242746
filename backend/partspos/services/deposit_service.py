# Overview: Customer deposits held by the shop and withdrawals against them.

from __future__ import annotations

from sqlalchemy import func

from ..errors import AlreadyWithdrawnError, ExceedsBalanceError, NotFoundError, ValidationError
from ..extensions import db
from ..models import CustomerDeposit, DepositWithdrawal
from ..models.deposits import (
    DEPOSIT_STATUS_ACTIVE,
    DEPOSIT_STATUS_PARTIAL,
    DEPOSIT_STATUS_WITHDRAWN,
    DEPOSIT_STATUSES,
)
from ..models.ledger import CASH_DEPOSIT, CASH_DEPOSIT_WITHDRAWAL
from . import audit_service, cash_service
from .concurrency import lock_for_update, run_with_retry
from .debt_service import locked_customer
from .document_service import next_deposit_number


def derive_deposit_status(original_afn_cents: int, remaining_afn_cents: int) -> str:
    if remaining_afn_cents == 0:
        return DEPOSIT_STATUS_WITHDRAWN
    if remaining_afn_cents < original_afn_cents:
        return DEPOSIT_STATUS_PARTIAL
    return DEPOSIT_STATUS_ACTIVE


def create_deposit(*, customer_id: int, amount_afn_cents: int, notes: str | None = None,
                   user_id: int | None = None) -> CustomerDeposit:
    if amount_afn_cents is None or amount_afn_cents <= 0:
        raise ValidationError("amount_afn_cents must be greater than zero", "amount_afn_cents")

    def _op():
        customer = locked_customer(customer_id)
        deposit = CustomerDeposit(
            deposit_number=next_deposit_number(),
            customer_id=customer.id,
            original_afn_cents=amount_afn_cents,
            withdrawn_afn_cents=0,
            status=DEPOSIT_STATUS_ACTIVE,
            notes=notes,
            user_id=user_id,
        )
        db.session.add(deposit)
        db.session.flush()
        cash_service.apply_cash_entry(
            amount_afn_cents=amount_afn_cents,
            entry_type=CASH_DEPOSIT,
            description=f"Deposit {deposit.deposit_number} from {customer.name}",
            reference_type="deposit",
            reference_id=deposit.id,
            actor_user_id=user_id,
        )
        return deposit

    deposit = run_with_retry(_op)
    audit_service.log_action(
        user_id=user_id,
        action="CREATE_DEPOSIT",
        entity="deposit",
        entity_id=deposit.id,
        details={"deposit_number": deposit.deposit_number, "amount_afn_cents": amount_afn_cents},
    )
    return deposit


def withdraw_deposit(deposit_id: int, *, amount_afn_cents: int, notes: str | None = None,
                     user_id: int | None = None) -> DepositWithdrawal:
    if amount_afn_cents is None or amount_afn_cents <= 0:
        raise ValidationError("amount_afn_cents must be greater than zero", "amount_afn_cents")

    def _op():
        deposit = lock_for_update(db.session.query(CustomerDeposit).filter_by(id=deposit_id)).first()
        if not deposit:
            raise NotFoundError("Deposit not found")
        if deposit.status == DEPOSIT_STATUS_WITHDRAWN:
            raise AlreadyWithdrawnError("Deposit is already fully withdrawn")
        if amount_afn_cents > deposit.remaining_afn_cents:
            raise ExceedsBalanceError(
                "Withdrawal exceeds remaining deposit",
                details={"remaining_afn_cents": deposit.remaining_afn_cents},
            )

        withdrawal = DepositWithdrawal(
            deposit=deposit,
            amount_afn_cents=amount_afn_cents,
            notes=notes,
            user_id=user_id,
        )
        db.session.add(withdrawal)
        deposit.withdrawn_afn_cents += amount_afn_cents
        deposit.status = derive_deposit_status(deposit.original_afn_cents, deposit.remaining_afn_cents)
        db.session.flush()

        cash_service.apply_cash_entry(
            amount_afn_cents=-amount_afn_cents,
            entry_type=CASH_DEPOSIT_WITHDRAWAL,
            description=f"Withdrawal from {deposit.deposit_number}",
            reference_type="deposit",
            reference_id=deposit.id,
            actor_user_id=user_id,
        )
        return withdrawal

    withdrawal = run_with_retry(_op)
    audit_service.log_action(
        user_id=user_id,
        action="WITHDRAW_DEPOSIT",
        entity="deposit",
        entity_id=deposit_id,
        details={"amount_afn_cents": amount_afn_cents},
    )
    return withdrawal


def get_deposit(deposit_id: int) -> CustomerDeposit:
    deposit = db.session.get(CustomerDeposit, deposit_id)
    if not deposit:
        raise NotFoundError("Deposit not found")
    return deposit


def list_deposits(*, customer_id: int | None = None, status: str | None = None) -> list[CustomerDeposit]:
    if status and status not in DEPOSIT_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(sorted(DEPOSIT_STATUSES))}", "status")
    query = db.session.query(CustomerDeposit)
    if customer_id:
        query = query.filter(CustomerDeposit.customer_id == customer_id)
    if status:
        query = query.filter(CustomerDeposit.status == status)
    return query.order_by(CustomerDeposit.deposited_at.desc(), CustomerDeposit.id.desc()).all()


def get_deposit_summary() -> dict:
    total_active = (
        db.session.query(func.coalesce(func.sum(CustomerDeposit.remaining_afn_cents), 0))
        .filter(CustomerDeposit.status.in_([DEPOSIT_STATUS_ACTIVE, DEPOSIT_STATUS_PARTIAL]))
        .scalar()
    )
    total_withdrawn = (
        db.session.query(func.coalesce(func.sum(CustomerDeposit.original_afn_cents), 0))
        .filter(CustomerDeposit.status == DEPOSIT_STATUS_WITHDRAWN)
        .scalar()
    )
    return {
        "total_active_afn_cents": int(total_active),
        "total_withdrawn_afn_cents": int(total_withdrawn),
        "total_deposits": db.session.query(func.count(CustomerDeposit.id)).scalar(),
    }
