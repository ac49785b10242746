# Overview: Customer receivables: sale credit and cash lending.

"""
Debt Service

A CreditEntry is opened for the unpaid part of a sale (SALE_CREDIT) or for cash lent
to a customer (LENDING). Amounts are canonical in AFN at the entry's locked rate.

Invariants kept by every function here, inside one transaction each:
- customer.outstanding_balance_afn_cents == sum of remaining over the customer's
  non-settled entries
- every AFN that changes hands is journaled through cash_service.apply_cash_entry
"""

from __future__ import annotations

from datetime import datetime, timedelta

from flask import current_app
from sqlalchemy import func

from ..errors import (
    AlreadySettledError,
    ExceedsBalanceError,
    NotFoundError,
    ValidationError,
)
from ..extensions import db
from ..models import CreditEntry, Customer, DebtPayment, Invoice, Payment, User
from ..models.credit import (
    CREDIT_STATUS_ACTIVE,
    CREDIT_STATUS_DUE_SOON,
    CREDIT_STATUS_OVERDUE,
    CREDIT_STATUS_SETTLED,
    CREDIT_STATUSES,
    ENTRY_KIND_LENDING,
    ENTRY_KIND_SALE_CREDIT,
)
from ..models.ledger import CASH_DEBT_PAYMENT, CASH_LENDING, CASH_LENDING_DELETE
from ..models.sales import INVOICE_STATUS_OVERDUE, INVOICE_STATUS_PAID, INVOICE_STATUS_PARTIAL
from ..money import (
    PAYMENT_TOLERANCE_AFN_CENTS,
    SETTLE_THRESHOLD_AFN_CENTS,
    afn_to_usd_cents,
    usd_to_afn_cents,
)
from ..time_utils import days_until, utcnow
from . import audit_service, auth_service, cash_service
from .concurrency import lock_for_update, run_with_retry
from .document_service import next_lending_number
from .settings_service import get_exchange_rate

DEFAULT_LENDING_NOTES = "Cash Lending"
DEBT_PAYMENT_REFERENCE = "Debt Payment"


def derive_debt_status(due_date: datetime, remaining_afn_cents: int, now: datetime | None = None) -> str:
    """
    SETTLED when nothing remains; otherwise by days until due:
    < 0 OVERDUE, <= 1 DUE_SOON, else ACTIVE.
    """
    if remaining_afn_cents <= 0:
        return CREDIT_STATUS_SETTLED
    days = days_until(due_date, now)
    if days < 0:
        return CREDIT_STATUS_OVERDUE
    if days <= 1:
        return CREDIT_STATUS_DUE_SOON
    return CREDIT_STATUS_ACTIVE


def default_due_date(now: datetime | None = None) -> datetime:
    now = now or utcnow()
    return now + timedelta(days=current_app.config.get("CREDIT_TERM_DAYS", 30))


def locked_customer(customer_id: int) -> Customer:
    customer = lock_for_update(db.session.query(Customer).filter_by(id=customer_id)).first()
    if not customer:
        raise NotFoundError("Customer not found")
    return customer


def _locked_entry(debt_id: int) -> CreditEntry:
    entry = lock_for_update(db.session.query(CreditEntry).filter_by(id=debt_id)).first()
    if not entry:
        raise NotFoundError("Debt not found")
    return entry


# =============================================================================
# Helpers shared with sales, returns and customer payments (no commit)
# =============================================================================

def open_sale_credit(invoice: Invoice, customer: Customer, due_date: datetime | None = None) -> CreditEntry:
    """Open the SALE_CREDIT entry for invoice.outstanding_cents and grow the customer cache."""
    afn = usd_to_afn_cents(invoice.outstanding_cents, invoice.exchange_rate)
    due = due_date or default_due_date()
    entry = CreditEntry(
        kind=ENTRY_KIND_SALE_CREDIT,
        customer_id=customer.id,
        invoice_id=invoice.id,
        exchange_rate=invoice.exchange_rate,
        original_afn_cents=afn,
        paid_afn_cents=0,
        credited_afn_cents=0,
        opened_at=invoice.date,
        due_date=due,
        status=derive_debt_status(due, afn),
        notes=f"Invoice {invoice.invoice_number}",
    )
    db.session.add(entry)
    customer.outstanding_balance_afn_cents += afn
    db.session.flush()
    return entry


def entry_outstanding_cents(entry: CreditEntry) -> int:
    """USD view of what remains on an entry; never rounds an open entry down to zero."""
    remaining = entry.remaining_afn_cents
    if remaining <= 0:
        return 0
    return max(1, afn_to_usd_cents(remaining, entry.exchange_rate))


def sync_invoice_from_entry(entry: CreditEntry) -> None:
    """
    Re-derive a credit sale's invoice from its entry, which is canonical in AFN.

    outstanding_cents is the entry's remaining converted at its locked rate, and
    paid_cents is what is left of the total once outstanding and credited
    (returned or written off) amounts are taken out.
    """
    invoice = entry.invoice
    if invoice is None or entry.kind != ENTRY_KIND_SALE_CREDIT:
        return
    invoice.outstanding_cents = entry_outstanding_cents(entry)
    credited = afn_to_usd_cents(entry.credited_afn_cents, entry.exchange_rate)
    invoice.paid_cents = max(0, invoice.total_cents - invoice.outstanding_cents - credited)
    if invoice.outstanding_cents == 0:
        invoice.status = INVOICE_STATUS_PAID
    elif entry.status == CREDIT_STATUS_OVERDUE:
        invoice.status = INVOICE_STATUS_OVERDUE
    else:
        invoice.status = INVOICE_STATUS_PARTIAL


def _write_off_residual(entry: CreditEntry) -> int:
    residual = entry.remaining_afn_cents
    if 0 < residual < SETTLE_THRESHOLD_AFN_CENTS:
        entry.credited_afn_cents += residual
        return residual
    return 0


def apply_payment_to_entry(
    entry: CreditEntry,
    amount_afn_cents: int,
    *,
    method: str,
    reference: str | None,
    notes: str | None,
    user_id: int | None,
) -> tuple[DebtPayment, int]:
    """
    Apply a payment to one entry, its invoice, and the payments journal.

    Returns (debt_payment, absorbed_afn) where absorbed_afn is what leaves the
    customer's outstanding balance (the payment plus any sub-1-AFN residual that
    is written off when the entry settles). The caller moves cash and the cache.
    """
    entry.paid_afn_cents += amount_afn_cents
    absorbed = amount_afn_cents + _write_off_residual(entry)

    entry.status = derive_debt_status(entry.due_date, entry.remaining_afn_cents)

    debt_payment = DebtPayment(
        credit_entry=entry,
        amount_afn_cents=amount_afn_cents,
        method=method,
        reference=reference,
        notes=notes,
        user_id=user_id,
    )
    db.session.add(debt_payment)

    sync_invoice_from_entry(entry)

    db.session.add(Payment(
        invoice_id=entry.invoice_id,
        customer_id=entry.customer_id,
        credit_entry=entry,
        amount_afn_cents=amount_afn_cents,
        exchange_rate=entry.exchange_rate,
        method=method,
        reference=reference or DEBT_PAYMENT_REFERENCE,
        user_id=user_id,
    ))
    db.session.flush()
    return debt_payment, absorbed


def credit_entry_for_return(invoice: Invoice, refund_cents: int) -> tuple[int, int]:
    """
    Apply the value of returned goods to the invoice's open credit entry.

    The entry's AFN remaining decides how much of the refund is absorbed as debt.
    Returns (debt_reduced_cents, credited_afn); both are 0 without open sale credit.
    """
    entry = (
        db.session.query(CreditEntry)
        .filter(
            CreditEntry.invoice_id == invoice.id,
            CreditEntry.kind == ENTRY_KIND_SALE_CREDIT,
            CreditEntry.status != CREDIT_STATUS_SETTLED,
        )
        .first()
    )
    if entry is None or entry.remaining_afn_cents <= 0 or refund_cents <= 0:
        return 0, 0

    owed_cents = entry_outstanding_cents(entry)
    if refund_cents >= owed_cents:
        reduced_cents = owed_cents
        credit_afn = entry.remaining_afn_cents
    else:
        reduced_cents = refund_cents
        credit_afn = min(usd_to_afn_cents(refund_cents, entry.exchange_rate), entry.remaining_afn_cents)

    entry.credited_afn_cents += credit_afn
    credit_afn += _write_off_residual(entry)
    entry.status = derive_debt_status(entry.due_date, entry.remaining_afn_cents)
    sync_invoice_from_entry(entry)

    customer = locked_customer(entry.customer_id)
    customer.outstanding_balance_afn_cents -= credit_afn
    db.session.flush()
    return reduced_cents, credit_afn


def remove_entries_for_invoice(invoice: Invoice) -> int:
    """
    Delete the invoice's credit entries, releasing their remaining balance from
    the customer cache. Returns the AFN released.
    """
    released = 0
    entries = db.session.query(CreditEntry).filter_by(invoice_id=invoice.id).all()
    for entry in entries:
        if entry.status != CREDIT_STATUS_SETTLED and entry.remaining_afn_cents > 0:
            customer = locked_customer(entry.customer_id)
            customer.outstanding_balance_afn_cents -= entry.remaining_afn_cents
            released += entry.remaining_afn_cents
        db.session.delete(entry)
    db.session.flush()
    return released


# =============================================================================
# Queries
# =============================================================================

def refresh_debt_statuses(now: datetime | None = None) -> int:
    """
    Re-derive the cached status of every open entry and of the invoice behind
    each sale credit, so an invoice leaves OVERDUE once its entry does.
    Returns the number of entries changed.
    """
    now = now or utcnow()

    def _op():
        changed = 0
        entries = (
            db.session.query(CreditEntry)
            .filter(CreditEntry.status != CREDIT_STATUS_SETTLED)
            .all()
        )
        for entry in entries:
            status = derive_debt_status(entry.due_date, entry.remaining_afn_cents, now)
            if status != entry.status:
                entry.status = status
                changed += 1
            sync_invoice_from_entry(entry)
        db.session.flush()
        return changed

    return run_with_retry(_op)


def list_debts(
    *,
    customer_id: int | None = None,
    status: str | None = None,
    kind: str | None = None,
) -> list[CreditEntry]:
    if status and status not in CREDIT_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(sorted(CREDIT_STATUSES))}", "status")
    if kind and kind not in {ENTRY_KIND_SALE_CREDIT, ENTRY_KIND_LENDING}:
        raise ValidationError("kind must be SALE_CREDIT or LENDING", "kind")

    refresh_debt_statuses()

    query = db.session.query(CreditEntry)
    if customer_id:
        query = query.filter(CreditEntry.customer_id == customer_id)
    if status:
        query = query.filter(CreditEntry.status == status)
    if kind:
        query = query.filter(CreditEntry.kind == kind)
    return query.order_by(CreditEntry.due_date.asc(), CreditEntry.id.asc()).all()


def get_debt(debt_id: int) -> CreditEntry:
    refresh_debt_statuses()
    entry = db.session.get(CreditEntry, debt_id)
    if not entry:
        raise NotFoundError("Debt not found")
    return entry


def list_debtors() -> list[dict]:
    """Customers who owe money, with their open entries."""
    refresh_debt_statuses()

    customers = (
        db.session.query(Customer)
        .filter(Customer.outstanding_balance_afn_cents > 0)
        .order_by(Customer.outstanding_balance_afn_cents.desc())
        .all()
    )
    rows = []
    for customer in customers:
        entries = (
            db.session.query(CreditEntry)
            .filter(
                CreditEntry.customer_id == customer.id,
                CreditEntry.status != CREDIT_STATUS_SETTLED,
            )
            .order_by(CreditEntry.due_date.asc())
            .all()
        )
        rows.append({
            "customer": customer.to_dict(include_usd=False),
            "outstanding_balance_afn_cents": customer.outstanding_balance_afn_cents,
            "outstanding_balance_cents": sum(e.remaining_cents for e in entries),
            "overdue_count": sum(1 for e in entries if e.status == CREDIT_STATUS_OVERDUE),
            "due_soon_count": sum(1 for e in entries if e.status == CREDIT_STATUS_DUE_SOON),
            "entries": [e.to_dict() for e in entries],
        })
    return rows


def get_debt_summary() -> dict:
    refresh_debt_statuses()

    open_entries = (
        db.session.query(CreditEntry)
        .filter(CreditEntry.status != CREDIT_STATUS_SETTLED)
        .all()
    )
    counts = dict(
        db.session.query(CreditEntry.status, func.count(CreditEntry.id))
        .group_by(CreditEntry.status)
        .all()
    )
    return {
        "total_outstanding_afn_cents": sum(e.remaining_afn_cents for e in open_entries),
        "total_outstanding_cents": sum(e.remaining_cents for e in open_entries),
        "overdue_afn_cents": sum(e.remaining_afn_cents for e in open_entries if e.status == CREDIT_STATUS_OVERDUE),
        "lending_afn_cents": sum(e.remaining_afn_cents for e in open_entries if e.kind == ENTRY_KIND_LENDING),
        "counts": {status: counts.get(status, 0) for status in sorted(CREDIT_STATUSES)},
        "debtor_count": len({e.customer_id for e in open_entries}),
    }


# =============================================================================
# Mutations
# =============================================================================

def _resolve_amount_afn(entry: CreditEntry, amount_afn_cents: int | None, amount_cents: int | None) -> int:
    if amount_afn_cents is not None:
        return amount_afn_cents
    return usd_to_afn_cents(amount_cents, entry.exchange_rate)


def record_debt_payment(
    debt_id: int,
    *,
    amount_afn_cents: int | None = None,
    amount_cents: int | None = None,
    method: str = "CASH",
    reference: str | None = None,
    notes: str | None = None,
    user_id: int | None = None,
) -> DebtPayment:
    """
    Pay down one entry. Amounts within 10 AFN of the remaining balance snap to it,
    and the till is credited with the snapped amount rather than the amount
    tendered. More than 10 AFN over is rejected.
    """
    if amount_afn_cents is None and amount_cents is None:
        raise ValidationError("amount_afn_cents or amount_cents is required", "amount_afn_cents")
    given = amount_afn_cents if amount_afn_cents is not None else amount_cents
    if given <= 0:
        raise ValidationError("Payment amount must be greater than zero", "amount_afn_cents")

    def _op():
        entry = _locked_entry(debt_id)
        remaining = entry.remaining_afn_cents
        if entry.status == CREDIT_STATUS_SETTLED or remaining <= 0:
            raise AlreadySettledError("Debt is already settled")

        amount = _resolve_amount_afn(entry, amount_afn_cents, amount_cents)
        if amount > remaining + PAYMENT_TOLERANCE_AFN_CENTS:
            raise ExceedsBalanceError(
                "Payment exceeds remaining balance",
                details={"remaining_afn_cents": remaining, "amount_afn_cents": amount},
            )
        if abs(remaining - amount) <= PAYMENT_TOLERANCE_AFN_CENTS:
            amount = remaining

        customer = locked_customer(entry.customer_id)
        debt_payment, absorbed = apply_payment_to_entry(
            entry, amount, method=method, reference=reference, notes=notes, user_id=user_id,
        )
        customer.outstanding_balance_afn_cents -= absorbed

        cash_service.apply_cash_entry(
            amount_afn_cents=amount,
            entry_type=CASH_DEBT_PAYMENT,
            description=f"Debt payment from {customer.name}",
            reference_type="credit_entry",
            reference_id=entry.id,
            actor_user_id=user_id,
        )
        return debt_payment

    debt_payment = run_with_retry(_op)
    audit_service.log_action(
        user_id=user_id,
        action="DEBT_PAYMENT",
        entity="credit_entry",
        entity_id=debt_id,
        details={"amount_afn_cents": debt_payment.amount_afn_cents, "method": method},
    )
    return debt_payment


def update_debt(debt_id: int, *, notes: str | None = None, due_date: datetime | None = None,
                user_id: int | None = None) -> CreditEntry:
    def _op():
        entry = _locked_entry(debt_id)
        if notes is not None:
            entry.notes = notes
        if due_date is not None:
            entry.due_date = due_date
        entry.status = derive_debt_status(entry.due_date, entry.remaining_afn_cents)
        sync_invoice_from_entry(entry)
        db.session.flush()
        return entry

    entry = run_with_retry(_op)
    audit_service.log_action(
        user_id=user_id,
        action="UPDATE_DEBT",
        entity="credit_entry",
        entity_id=debt_id,
        details={"notes": notes, "due_date": due_date},
    )
    return entry


def create_lending(
    *,
    customer_id: int,
    due_date: datetime,
    amount_afn_cents: int | None = None,
    amount_cents: int | None = None,
    exchange_rate=None,
    notes: str | None = None,
    user_id: int | None = None,
) -> CreditEntry:
    """
    Lend cash to a customer: opens a LENDING entry, grows the customer's balance
    and takes the cash out of the shop balance.
    """
    if due_date is None:
        raise ValidationError("due_date is required", "due_date")
    if amount_afn_cents is None and amount_cents is None:
        raise ValidationError("amount_afn_cents or amount_cents is required", "amount_afn_cents")

    rate = exchange_rate if exchange_rate is not None else get_exchange_rate()
    afn = amount_afn_cents if amount_afn_cents is not None else usd_to_afn_cents(amount_cents, rate)
    if afn <= 0:
        raise ValidationError("Lending amount must be greater than zero", "amount_afn_cents")

    def _op():
        customer = locked_customer(customer_id)
        entry = CreditEntry(
            kind=ENTRY_KIND_LENDING,
            reference_number=next_lending_number(),
            customer_id=customer.id,
            invoice_id=None,
            exchange_rate=rate,
            original_afn_cents=afn,
            paid_afn_cents=0,
            credited_afn_cents=0,
            opened_at=utcnow(),
            due_date=due_date,
            status=derive_debt_status(due_date, afn),
            notes=notes or DEFAULT_LENDING_NOTES,
        )
        db.session.add(entry)
        customer.outstanding_balance_afn_cents += afn
        db.session.flush()

        cash_service.apply_cash_entry(
            amount_afn_cents=-afn,
            entry_type=CASH_LENDING,
            description=f"Lent to {customer.name}",
            reference_type="credit_entry",
            reference_id=entry.id,
            actor_user_id=user_id,
        )
        return entry

    entry = run_with_retry(_op)
    audit_service.log_action(
        user_id=user_id,
        action="CREATE_LENDING",
        entity="credit_entry",
        entity_id=entry.id,
        details={"reference_number": entry.reference_number, "amount_afn_cents": afn},
    )
    return entry


def delete_debt(debt_id: int, *, actor: User, password: str | None) -> dict:
    """
    Remove a credit entry after re-authenticating the actor.

    The customer's balance drops by what remained. Lending: the cash still out
    (original - paid) comes back to the shop, so create + delete nets to zero.
    Sale credit: the unpaid balance is written off, with no cash movement, and
    the invoice no longer shows anything outstanding.
    """
    auth_service.verify_actor_password(actor, password)

    def _op():
        entry = _locked_entry(debt_id)
        customer = locked_customer(entry.customer_id)
        remaining = max(entry.remaining_afn_cents, 0)
        if entry.status != CREDIT_STATUS_SETTLED:
            customer.outstanding_balance_afn_cents -= remaining

        result = {
            "id": entry.id,
            "kind": entry.kind,
            "released_afn_cents": remaining,
            "cash_restored_afn_cents": 0,
        }

        if entry.kind == ENTRY_KIND_LENDING:
            net_out = entry.original_afn_cents - entry.paid_afn_cents
            if net_out:
                cash_service.apply_cash_entry(
                    amount_afn_cents=net_out,
                    entry_type=CASH_LENDING_DELETE,
                    description=f"Lending {entry.reference_number} deleted",
                    reference_type="credit_entry",
                    reference_id=entry.id,
                    actor_user_id=actor.id,
                )
            result["cash_restored_afn_cents"] = net_out
            for payment in list(entry.mirrored_payments):
                db.session.delete(payment)
        elif entry.invoice is not None:
            entry.invoice.outstanding_cents = 0
            entry.invoice.status = INVOICE_STATUS_PAID

        db.session.delete(entry)
        db.session.flush()
        return result

    result = run_with_retry(_op)
    audit_service.log_action(
        user_id=actor.id,
        action="DELETE_DEBT",
        entity="credit_entry",
        entity_id=debt_id,
        details=result,
    )
    return result
