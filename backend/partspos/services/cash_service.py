# Overview: Shop cash balance and its append-only journal.

"""
The shop's AFN cash position.

apply_cash_entry() is the only writer of CashBalance. Callers invoke it inside
their own run_with_retry unit so the journal entry, the balance change, and the
business change commit or roll back together.
"""

from __future__ import annotations

from sqlalchemy import func

from ..errors import ValidationError
from ..extensions import db
from ..models import CashBalance, CashLedgerEntry
from ..models.ledger import CASH_BALANCE_ROW_ID, CASH_ENTRY_TYPES, CASH_MANUAL
from .concurrency import lock_for_update, run_with_retry


def _locked_balance_row() -> CashBalance:
    row = lock_for_update(
        db.session.query(CashBalance).filter_by(id=CASH_BALANCE_ROW_ID)
    ).first()
    if row is None:
        row = CashBalance(id=CASH_BALANCE_ROW_ID, balance_afn_cents=0)
        db.session.add(row)
        db.session.flush()
    return row


def ensure_cash_balance() -> CashBalance:
    return _locked_balance_row()


def get_cash_balance() -> int:
    row = db.session.query(CashBalance).filter_by(id=CASH_BALANCE_ROW_ID).first()
    return row.balance_afn_cents if row else 0


def apply_cash_entry(
    *,
    amount_afn_cents: int,
    entry_type: str,
    description: str | None = None,
    reference_type: str | None = None,
    reference_id: int | None = None,
    actor_user_id: int | None = None,
) -> CashLedgerEntry:
    """
    Move the shop balance by amount_afn_cents (signed) and journal it.

    Does not commit.
    """
    if entry_type not in CASH_ENTRY_TYPES:
        raise ValueError(f"Unknown cash entry type: {entry_type}")

    row = _locked_balance_row()
    before = row.balance_afn_cents
    after = before + amount_afn_cents
    row.balance_afn_cents = after

    entry = CashLedgerEntry(
        entry_type=entry_type,
        amount_afn_cents=amount_afn_cents,
        balance_before_afn_cents=before,
        balance_after_afn_cents=after,
        description=description,
        reference_type=reference_type,
        reference_id=reference_id,
        actor_user_id=actor_user_id,
    )
    db.session.add(entry)
    db.session.flush()
    return entry


def set_cash_balance(*, new_balance_afn_cents: int, actor_user_id: int, description: str | None = None) -> CashLedgerEntry | None:
    """
    Manually set the balance; the difference is journaled as MANUAL.

    Returns None when the balance already equals the requested value.
    """
    if new_balance_afn_cents < 0:
        raise ValidationError("balance_afn_cents must be >= 0", "balance_afn_cents")

    def _op():
        current = _locked_balance_row().balance_afn_cents
        delta = new_balance_afn_cents - current
        if delta == 0:
            return None
        return apply_cash_entry(
            amount_afn_cents=delta,
            entry_type=CASH_MANUAL,
            description=description or "Manual balance update",
            actor_user_id=actor_user_id,
        )

    return run_with_retry(_op)


def list_cash_history(limit: int = 100) -> list[CashLedgerEntry]:
    limit = max(1, min(limit, 500))
    return (
        db.session.query(CashLedgerEntry)
        .order_by(CashLedgerEntry.id.desc())
        .limit(limit)
        .all()
    )


def verify_cash_ledger() -> dict:
    """Compare the stored balance with the journal total."""
    balance = get_cash_balance()
    journal_total = db.session.query(func.coalesce(func.sum(CashLedgerEntry.amount_afn_cents), 0)).scalar()
    return {
        "balance_afn_cents": balance,
        "journal_total_afn_cents": int(journal_total),
        "consistent": balance == int(journal_total),
    }
