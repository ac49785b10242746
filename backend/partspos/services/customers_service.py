# backend/partspos/services/customers_service.py
"""
Customers Service

Customer accounts, the walk-in placeholder, and account-level payments that are
reconciled oldest-first across the customer's open credit entries.
"""
from __future__ import annotations

import random
import string

from sqlalchemy import func

from ..errors import BusinessRuleError, ExceedsBalanceError, NotFoundError, ValidationError
from ..extensions import db
from ..models import (
    CreditEntry,
    Customer,
    CustomerDeposit,
    DebtPayment,
    DepositWithdrawal,
    Invoice,
    InvoiceItem,
    Payment,
    User,
)
from ..models.credit import CREDIT_STATUS_SETTLED
from ..models.customers import WALK_IN_ADDRESS, WALK_IN_NAME
from ..models.ledger import CASH_CUSTOMER_PAYMENT
from ..money import PAYMENT_TOLERANCE_AFN_CENTS, usd_to_afn_cents
from ..validation import ModelValidationPolicy, enforce_non_negative, validate_payload
from . import audit_service, auth_service, cash_service
from .concurrency import lock_for_update, run_with_retry
from .debt_service import apply_payment_to_entry, locked_customer
from .settings_service import get_exchange_rate

CUSTOMER_POLICY = ModelValidationPolicy(
    writable_fields={"name", "phone", "email", "address", "credit_limit_cents", "payment_terms"},
    required_on_create={"name"},
)

DISPLAY_ID_ATTEMPTS = 5
STATUS_FILTERS = {"active", "archived", "all"}


def generate_display_id() -> str:
    """Two uppercase letters followed by five digits, e.g. 'KB40213'."""
    letters = "".join(random.choices(string.ascii_uppercase, k=2))
    return f"{letters}{random.randint(10000, 99999)}"


def _allocate_display_id() -> str:
    for _ in range(DISPLAY_ID_ATTEMPTS):
        candidate = generate_display_id()
        taken = db.session.query(Customer.id).filter_by(display_id=candidate).first()
        if not taken:
            return candidate
    raise BusinessRuleError("Could not allocate a unique customer id; please retry")


def get_customer(customer_id: int) -> Customer:
    customer = db.session.get(Customer, customer_id)
    if not customer:
        raise NotFoundError("Customer not found")
    return customer


def get_customer_detail(customer_id: int) -> dict:
    customer = get_customer(customer_id)
    invoices = (
        db.session.query(Invoice)
        .filter_by(customer_id=customer.id)
        .order_by(Invoice.date.desc())
        .limit(50)
        .all()
    )
    payments = (
        db.session.query(Payment)
        .filter_by(customer_id=customer.id)
        .order_by(Payment.id.desc())
        .limit(50)
        .all()
    )
    open_entries = (
        db.session.query(CreditEntry)
        .filter(CreditEntry.customer_id == customer.id, CreditEntry.status != CREDIT_STATUS_SETTLED)
        .order_by(CreditEntry.opened_at.asc(), CreditEntry.id.asc())
        .all()
    )
    deposits = (
        db.session.query(CustomerDeposit)
        .filter_by(customer_id=customer.id)
        .order_by(CustomerDeposit.id.desc())
        .all()
    )
    data = customer.to_dict()
    data["invoices"] = [i.to_dict() for i in invoices]
    data["payments"] = [p.to_dict() for p in payments]
    data["credit_entries"] = [e.to_dict() for e in open_entries]
    data["deposits"] = [d.to_dict() for d in deposits]
    return data


def list_customers(*, status: str = "active", search: str | None = None) -> list[Customer]:
    if status not in STATUS_FILTERS:
        raise ValidationError(f"status must be one of: {', '.join(sorted(STATUS_FILTERS))}", "status")
    query = db.session.query(Customer)
    if status == "active":
        query = query.filter(Customer.is_active.is_(True))
    elif status == "archived":
        query = query.filter(Customer.is_active.is_(False))
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(
            Customer.name.ilike(like) | Customer.phone.ilike(like) | Customer.display_id.ilike(like)
        )
    return query.order_by(Customer.name.asc(), Customer.id.asc()).all()


def create_customer(payload: dict) -> Customer:
    patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=False)
    enforce_non_negative(patch, "credit_limit_cents")

    def _op():
        customer = Customer(display_id=_allocate_display_id(), **patch)
        db.session.add(customer)
        db.session.flush()
        return customer

    return run_with_retry(_op)


def update_customer(customer_id: int, payload: dict) -> Customer:
    payload = {k: v for k, v in (payload or {}).items() if k != "display_id"}
    patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=True)
    enforce_non_negative(patch, "credit_limit_cents")

    def _op():
        customer = locked_customer(customer_id)
        for key, value in patch.items():
            setattr(customer, key, value)
        db.session.flush()
        return customer

    return run_with_retry(_op)


def toggle_customer_status(customer_id: int) -> Customer:
    def _op():
        customer = locked_customer(customer_id)
        customer.is_active = not customer.is_active
        db.session.flush()
        return customer

    return run_with_retry(_op)


def get_or_create_walk_in() -> Customer:
    """The shared walk-in account (no commit)."""
    customer = db.session.query(Customer).filter_by(is_walk_in=True).first()
    if customer:
        return customer
    customer = Customer(
        display_id=_allocate_display_id(),
        name=WALK_IN_NAME,
        address=WALK_IN_ADDRESS,
        is_walk_in=True,
    )
    db.session.add(customer)
    db.session.flush()
    return customer


# =============================================================================
# Account payment (FIFO reconciliation)
# =============================================================================

def receive_customer_payment(
    customer_id: int,
    *,
    amount_afn_cents: int | None = None,
    amount_cents: int | None = None,
    exchange_rate=None,
    method: str = "CASH",
    reference: str | None = None,
    notes: str | None = None,
    user_id: int | None = None,
) -> dict:
    """
    Apply one payment across the customer's open entries, oldest first
    (opened date, then id). Each touched entry gets a DebtPayment and its
    invoice is updated. Overpaying by more than 10 AFN is rejected. A payment
    within 10 AFN of the total balance settles everything, and the till is
    credited with that snapped total rather than the amount tendered.
    """
    if amount_afn_cents is None and amount_cents is None:
        raise ValidationError("amount_afn_cents or amount_cents is required", "amount_afn_cents")
    if amount_afn_cents is None:
        rate = exchange_rate if exchange_rate is not None else get_exchange_rate()
        amount_afn_cents = usd_to_afn_cents(amount_cents, rate)
    if amount_afn_cents <= 0:
        raise ValidationError("Payment amount must be greater than zero", "amount_afn_cents")

    def _op():
        customer = locked_customer(customer_id)
        entries = (
            lock_for_update(
                db.session.query(CreditEntry).filter(
                    CreditEntry.customer_id == customer.id,
                    CreditEntry.status != CREDIT_STATUS_SETTLED,
                    CreditEntry.remaining_afn_cents > 0,
                )
            )
            .order_by(CreditEntry.opened_at.asc(), CreditEntry.id.asc())
            .all()
        )
        total_open = sum(e.remaining_afn_cents for e in entries)
        if total_open <= 0:
            raise BusinessRuleError("Customer has no outstanding balance")

        amount = amount_afn_cents
        if amount > total_open + PAYMENT_TOLERANCE_AFN_CENTS:
            raise ExceedsBalanceError(
                "Payment exceeds outstanding balance",
                details={"outstanding_afn_cents": total_open, "amount_afn_cents": amount},
            )
        if abs(total_open - amount) <= PAYMENT_TOLERANCE_AFN_CENTS:
            amount = total_open

        left = amount
        applied = []
        for entry in entries:
            if left <= 0:
                break
            portion = min(left, entry.remaining_afn_cents)
            _, absorbed = apply_payment_to_entry(
                entry, portion, method=method, reference=reference, notes=notes, user_id=user_id,
            )
            customer.outstanding_balance_afn_cents -= absorbed
            left -= portion
            applied.append({
                "credit_entry_id": entry.id,
                "invoice_id": entry.invoice_id,
                "amount_afn_cents": portion,
                "remaining_afn_cents": entry.remaining_afn_cents,
                "status": entry.status,
            })

        cash_service.apply_cash_entry(
            amount_afn_cents=amount,
            entry_type=CASH_CUSTOMER_PAYMENT,
            description=f"Account payment from {customer.name}",
            reference_type="customer",
            reference_id=customer.id,
            actor_user_id=user_id,
        )
        return {
            "customer_id": customer.id,
            "amount_afn_cents": amount,
            "applied": applied,
            "outstanding_balance_afn_cents": customer.outstanding_balance_afn_cents,
        }

    result = run_with_retry(_op)
    audit_service.log_action(
        user_id=user_id,
        action="CUSTOMER_PAYMENT",
        entity="customer",
        entity_id=customer_id,
        details={"amount_afn_cents": result["amount_afn_cents"], "entries": len(result["applied"])},
    )
    return result


# =============================================================================
# Deletion
# =============================================================================

def _undrawn_deposits_afn(customer_id: int) -> int:
    return int(
        db.session.query(func.coalesce(func.sum(CustomerDeposit.remaining_afn_cents), 0))
        .filter(CustomerDeposit.customer_id == customer_id)
        .scalar()
    )


def _purge_customer(customer: Customer) -> None:
    """Delete a settled customer's history. No cash or stock moves."""
    if customer.outstanding_balance_afn_cents > 0:
        raise BusinessRuleError(f"Customer {customer.name} has an outstanding balance")
    if _undrawn_deposits_afn(customer.id) > 0:
        raise BusinessRuleError(f"Customer {customer.name} holds an undrawn deposit")

    entry_ids = [row.id for row in db.session.query(CreditEntry.id).filter_by(customer_id=customer.id)]
    invoice_ids = [row.id for row in db.session.query(Invoice.id).filter_by(customer_id=customer.id)]
    deposit_ids = [row.id for row in db.session.query(CustomerDeposit.id).filter_by(customer_id=customer.id)]

    if entry_ids:
        db.session.query(DebtPayment).filter(DebtPayment.credit_entry_id.in_(entry_ids)).delete(synchronize_session="fetch")
    db.session.query(Payment).filter(Payment.customer_id == customer.id).delete(synchronize_session="fetch")
    db.session.query(CreditEntry).filter(CreditEntry.customer_id == customer.id).delete(synchronize_session="fetch")
    if invoice_ids:
        db.session.query(InvoiceItem).filter(InvoiceItem.invoice_id.in_(invoice_ids)).delete(synchronize_session="fetch")
        db.session.query(Invoice).filter(Invoice.id.in_(invoice_ids)).delete(synchronize_session="fetch")
    if deposit_ids:
        db.session.query(DepositWithdrawal).filter(DepositWithdrawal.deposit_id.in_(deposit_ids)).delete(synchronize_session="fetch")
        db.session.query(CustomerDeposit).filter(CustomerDeposit.id.in_(deposit_ids)).delete(synchronize_session="fetch")
    db.session.query(Customer).filter(Customer.id == customer.id).delete(synchronize_session="fetch")


def delete_customer(customer_id: int, *, actor: User, password: str | None) -> None:
    auth_service.verify_actor_password(actor, password)

    def _op():
        customer = locked_customer(customer_id)
        name = customer.name
        _purge_customer(customer)
        return name

    name = run_with_retry(_op)
    audit_service.log_action(
        user_id=actor.id,
        action="DELETE_CUSTOMER",
        entity="customer",
        entity_id=customer_id,
        details={"name": name},
    )


def bulk_delete_customers(customer_ids: list[int], *, actor: User, password: str | None) -> dict:
    """Delete each customer that can be deleted; failures are reported per id."""
    auth_service.verify_actor_password(actor, password)

    def _op():
        deleted, failed = [], []
        for cid in customer_ids:
            customer = db.session.get(Customer, cid)
            if not customer:
                failed.append({"id": cid, "reason": "Customer not found"})
                continue
            try:
                _purge_customer(customer)
            except BusinessRuleError as e:
                failed.append({"id": cid, "reason": e.message})
                continue
            deleted.append(cid)
        return {"deleted": deleted, "failed": failed}

    result = run_with_retry(_op)
    audit_service.log_action(
        user_id=actor.id,
        action="BULK_DELETE_CUSTOMERS",
        entity="customer",
        details=result,
    )
    return result
