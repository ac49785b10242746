# Overview: Shop expenses paid out of the cash balance.

from __future__ import annotations

from datetime import datetime

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import Expense, User
from ..models.ledger import CASH_EXPENSE, CASH_EXPENSE_DELETE
from ..time_utils import utcnow
from . import audit_service, auth_service, cash_service
from .concurrency import run_with_retry


def create_expense(*, description: str, amount_afn_cents: int, category: str | None = None,
                   date: datetime | None = None, user_id: int | None = None) -> Expense:
    if not description:
        raise ValidationError("description is required", "description")
    if amount_afn_cents is None or amount_afn_cents <= 0:
        raise ValidationError("amount_afn_cents must be greater than zero", "amount_afn_cents")

    def _op():
        expense = Expense(
            description=description,
            category=category,
            amount_afn_cents=amount_afn_cents,
            date=date or utcnow(),
            user_id=user_id,
        )
        db.session.add(expense)
        db.session.flush()
        cash_service.apply_cash_entry(
            amount_afn_cents=-amount_afn_cents,
            entry_type=CASH_EXPENSE,
            description=f"Expense: {description}",
            reference_type="expense",
            reference_id=expense.id,
            actor_user_id=user_id,
        )
        return expense

    expense = run_with_retry(_op)
    audit_service.log_action(
        user_id=user_id,
        action="CREATE_EXPENSE",
        entity="expense",
        entity_id=expense.id,
        details={"amount_afn_cents": amount_afn_cents, "category": category},
    )
    return expense


def list_expenses(*, from_date: datetime | None = None, to_date: datetime | None = None) -> list[Expense]:
    query = db.session.query(Expense)
    if from_date:
        query = query.filter(Expense.date >= from_date)
    if to_date:
        query = query.filter(Expense.date <= to_date)
    return query.order_by(Expense.date.desc(), Expense.id.desc()).all()


def delete_expense(expense_id: int, *, actor: User, password: str | None) -> None:
    """Delete an expense and put its amount back into the cash balance."""
    auth_service.verify_actor_password(actor, password)

    def _op():
        expense = db.session.get(Expense, expense_id)
        if not expense:
            raise NotFoundError("Expense not found")
        cash_service.apply_cash_entry(
            amount_afn_cents=expense.amount_afn_cents,
            entry_type=CASH_EXPENSE_DELETE,
            description=f"Expense deleted: {expense.description}",
            reference_type="expense",
            reference_id=expense.id,
            actor_user_id=actor.id,
        )
        amount = expense.amount_afn_cents
        db.session.delete(expense)
        return amount

    amount = run_with_retry(_op)
    audit_service.log_action(
        user_id=actor.id,
        action="DELETE_EXPENSE",
        entity="expense",
        entity_id=expense_id,
        details={"amount_afn_cents": amount},
    )
