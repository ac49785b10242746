from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow

CASH_BALANCE_ROW_ID = 1

# Cash ledger entry types
CASH_SALE = "SALE"
CASH_SALE_REFUND = "SALE_REFUND"
CASH_SALE_DELETE = "SALE_DELETE"
CASH_DEBT_PAYMENT = "DEBT_PAYMENT"
CASH_CUSTOMER_PAYMENT = "CUSTOMER_PAYMENT"
CASH_LENDING = "LENDING"
CASH_LENDING_DELETE = "LENDING_DELETE"
CASH_DEPOSIT = "DEPOSIT"
CASH_DEPOSIT_WITHDRAWAL = "DEPOSIT_WITHDRAWAL"
CASH_EXPENSE = "EXPENSE"
CASH_EXPENSE_DELETE = "EXPENSE_DELETE"
CASH_MANUAL = "MANUAL"

CASH_ENTRY_TYPES = {
    CASH_SALE, CASH_SALE_REFUND, CASH_SALE_DELETE,
    CASH_DEBT_PAYMENT, CASH_CUSTOMER_PAYMENT,
    CASH_LENDING, CASH_LENDING_DELETE,
    CASH_DEPOSIT, CASH_DEPOSIT_WITHDRAWAL,
    CASH_EXPENSE, CASH_EXPENSE_DELETE,
    CASH_MANUAL,
}


class CashBalance(db.Model):
    """
    The shop's AFN cash position (single row).

    Only cash_service.apply_cash_entry writes it, always together with a
    CashLedgerEntry, so the balance equals the sum of the journal.
    """
    __tablename__ = "cash_balances"

    id = db.Column(db.Integer, primary_key=True)
    balance_afn_cents = db.Column(db.Integer, nullable=False, default=0)
    version_id = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "balance_afn_cents": self.balance_afn_cents,
            "updated_at": to_utc_z(self.updated_at),
        }


class CashLedgerEntry(db.Model):
    """
    Append-only cash journal.

    - No updates or deletes of existing entries.
    - Reversals are new entries with the opposite sign.
    """
    __tablename__ = "cash_ledger_entries"
    __table_args__ = (
        db.Index("ix_cash_ledger_reference", "reference_type", "reference_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    entry_type = db.Column(db.String(32), nullable=False, index=True)
    amount_afn_cents = db.Column(db.Integer, nullable=False)
    balance_before_afn_cents = db.Column(db.Integer, nullable=False)
    balance_after_afn_cents = db.Column(db.Integer, nullable=False)
    description = db.Column(db.String(255), nullable=True)
    reference_type = db.Column(db.String(32), nullable=True)
    reference_id = db.Column(db.Integer, nullable=True)
    actor_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "entry_type": self.entry_type,
            "amount_afn_cents": self.amount_afn_cents,
            "balance_before_afn_cents": self.balance_before_afn_cents,
            "balance_after_afn_cents": self.balance_after_afn_cents,
            "description": self.description,
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "actor_user_id": self.actor_user_id,
            "occurred_at": to_utc_z(self.occurred_at),
        }


class Expense(db.Model):
    """Shop expense paid from the AFN cash balance."""
    __tablename__ = "expenses"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    description = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(64), nullable=True)
    amount_afn_cents = db.Column(db.Integer, nullable=False)
    date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "description": self.description,
            "category": self.category,
            "amount_afn_cents": self.amount_afn_cents,
            "date": to_utc_z(self.date),
            "user_id": self.user_id,
            "created_at": to_utc_z(self.created_at),
        }
