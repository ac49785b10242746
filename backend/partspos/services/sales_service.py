# backend/partspos/services/sales_service.py
"""
Sales Service

A sale is one atomic unit: stock decrements, the invoice and its items, the
initial payment, the credit entry for any unpaid remainder, the customer's
outstanding balance, and the shop cash journal all commit together or not at all.

Reversals (delete, bulk delete, delete all) undo exactly what the sale and its
later payments did: stock not already returned comes back, open credit leaves
the customer's balance, and every AFN received for the invoice leaves the till.
"""
from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy import func

from ..errors import (
    InsufficientStockError,
    InvalidCustomerError,
    NotFoundError,
    ProductNotFoundError,
    ValidationError,
)
from ..extensions import db
from ..models import CreditEntry, Customer, DebtPayment, Invoice, InvoiceItem, Payment, Product, User
from ..models.ledger import CASH_SALE, CASH_SALE_DELETE
from ..models.sales import INVOICE_STATUS_PAID, INVOICE_STATUS_PARTIAL, PAYMENT_METHODS
from ..money import OUTSTANDING_DUST_CENTS, usd_to_afn_cents
from ..time_utils import utcnow
from ..validation import coerce_int
from . import audit_service, auth_service, cash_service, notification_service
from .concurrency import lock_for_update, run_with_retry
from .customers_service import get_or_create_walk_in
from .debt_service import open_sale_credit, remove_entries_for_invoice
from .document_service import next_invoice_number
from .settings_service import get_exchange_rate


def _normalize_items(items) -> list[dict]:
    if not isinstance(items, list) or not items:
        raise ValidationError("At least one item is required", "items")

    normalized = []
    for idx, raw in enumerate(items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{idx}] must be an object", "items")
        product_id = coerce_int(f"items[{idx}].product_id", raw.get("product_id"))
        quantity = coerce_int(f"items[{idx}].quantity", raw.get("quantity"))
        if quantity < 1:
            raise ValidationError(f"items[{idx}].quantity must be >= 1", "items")
        unit_price = raw.get("unit_price_cents")
        if unit_price is not None:
            unit_price = coerce_int(f"items[{idx}].unit_price_cents", unit_price)
            if unit_price < 0:
                raise ValidationError(f"items[{idx}].unit_price_cents must be >= 0", "items")
        discount = coerce_int(f"items[{idx}].discount_cents", raw.get("discount_cents") or 0)
        if discount < 0:
            raise ValidationError(f"items[{idx}].discount_cents must be >= 0", "items")
        normalized.append({
            "product_id": product_id,
            "quantity": quantity,
            "unit_price_cents": unit_price,
            "discount_cents": discount,
        })
    return normalized


def _resolve_customer(customer_id: int | None) -> Customer:
    if customer_id is None:
        return get_or_create_walk_in()
    customer = lock_for_update(db.session.query(Customer).filter_by(id=customer_id)).first()
    if not customer:
        raise InvalidCustomerError(f"Customer {customer_id} does not exist")
    return customer


def _lock_products(lines: list[dict]) -> dict[int, Product]:
    """Lock every product on the sale and check aggregated quantities before any change."""
    required: dict[int, int] = {}
    for line in lines:
        required[line["product_id"]] = required.get(line["product_id"], 0) + line["quantity"]

    products: dict[int, Product] = {}
    for product_id in sorted(required):
        product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
        if not product:
            raise ProductNotFoundError(f"Product {product_id} not found")
        if product.quantity_on_hand < required[product_id]:
            raise InsufficientStockError(
                f"Insufficient stock for {product.name}",
                details={
                    "product_id": product.id,
                    "on_hand": product.quantity_on_hand,
                    "requested": required[product_id],
                },
            )
        products[product_id] = product
    return products


def create_sale(
    *,
    items,
    customer_id: int | None = None,
    tax_cents: int = 0,
    discount_cents: int = 0,
    paid_cents: int = 0,
    payment_method: str = "CASH",
    payment_reference: str | None = None,
    exchange_rate=None,
    due_date: datetime | None = None,
    notes: str | None = None,
    user_id: int | None = None,
) -> Invoice:
    """
    total = subtotal + tax - (discount + line discounts). Tendering more than the
    total records the total and reports change_due_cents. An unpaid remainder
    below 0.05 USD is written off; anything more opens a SALE_CREDIT entry.
    """
    lines = _normalize_items(items)
    for name, value in (("tax_cents", tax_cents), ("discount_cents", discount_cents), ("paid_cents", paid_cents)):
        if value < 0:
            raise ValidationError(f"{name} must be >= 0", name)
    if payment_method not in PAYMENT_METHODS:
        raise ValidationError(f"payment_method must be one of: {', '.join(sorted(PAYMENT_METHODS))}", "payment_method")
    rate = exchange_rate if exchange_rate is not None else get_exchange_rate()

    def _op():
        customer = _resolve_customer(customer_id)
        products = _lock_products(lines)

        subtotal = 0
        line_discounts = 0
        for line in lines:
            product = products[line["product_id"]]
            if line["unit_price_cents"] is None:
                line["unit_price_cents"] = product.sale_price_cents
            subtotal += line["quantity"] * line["unit_price_cents"]
            line_discounts += line["discount_cents"]

        total = subtotal + tax_cents - discount_cents - line_discounts
        if total < 0:
            raise ValidationError("Discounts exceed the sale total", "discount_cents")

        recorded_paid = min(paid_cents, total)
        outstanding = total - recorded_paid
        if 0 < outstanding < OUTSTANDING_DUST_CENTS:
            outstanding = 0

        invoice = Invoice(
            invoice_number=next_invoice_number(),
            customer_id=customer.id,
            user_id=user_id,
            date=utcnow(),
            subtotal_cents=subtotal,
            tax_cents=tax_cents,
            discount_cents=discount_cents + line_discounts,
            total_cents=total,
            paid_cents=recorded_paid,
            outstanding_cents=outstanding,
            change_due_cents=paid_cents - recorded_paid,
            exchange_rate=rate,
            status=INVOICE_STATUS_PAID if outstanding == 0 else INVOICE_STATUS_PARTIAL,
            notes=notes,
        )
        db.session.add(invoice)
        db.session.flush()

        for line in lines:
            product = products[line["product_id"]]
            product.quantity_on_hand -= line["quantity"]
            db.session.add(InvoiceItem(
                invoice_id=invoice.id,
                product_id=product.id,
                quantity=line["quantity"],
                unit_price_cents=line["unit_price_cents"],
                discount_cents=line["discount_cents"],
                line_total_cents=line["quantity"] * line["unit_price_cents"] - line["discount_cents"],
                returned_quantity=0,
            ))

        if recorded_paid > 0:
            paid_afn = usd_to_afn_cents(recorded_paid, rate)
            db.session.add(Payment(
                invoice_id=invoice.id,
                customer_id=customer.id,
                amount_afn_cents=paid_afn,
                exchange_rate=rate,
                method=payment_method,
                reference=payment_reference,
                user_id=user_id,
            ))
            cash_service.apply_cash_entry(
                amount_afn_cents=paid_afn,
                entry_type=CASH_SALE,
                description=f"Sale {invoice.invoice_number}",
                reference_type="invoice",
                reference_id=invoice.id,
                actor_user_id=user_id,
            )

        if outstanding > 0:
            open_sale_credit(invoice, customer, due_date)

        db.session.flush()
        return invoice

    invoice = run_with_retry(_op)

    audit_service.log_action(
        user_id=user_id,
        action="CREATE_SALE",
        entity="invoice",
        entity_id=invoice.id,
        details={
            "invoice_number": invoice.invoice_number,
            "total_cents": invoice.total_cents,
            "paid_cents": invoice.paid_cents,
        },
    )
    try:
        notification_service.send_invoice_email_async(invoice)
    except Exception:
        current_app.logger.warning("Failed to queue invoice email for %s", invoice.invoice_number, exc_info=True)
    return invoice


def get_invoice(invoice_id: int) -> Invoice:
    invoice = db.session.get(Invoice, invoice_id)
    if not invoice:
        raise NotFoundError("Invoice not found")
    return invoice


def list_invoices(
    *,
    customer_id: int | None = None,
    status: str | None = None,
    from_date: datetime | None = None,
    to_date: datetime | None = None,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[Invoice], int]:
    query = db.session.query(Invoice)
    if customer_id:
        query = query.filter(Invoice.customer_id == customer_id)
    if status:
        query = query.filter(Invoice.status == status)
    if from_date:
        query = query.filter(Invoice.date >= from_date)
    if to_date:
        query = query.filter(Invoice.date <= to_date)

    total = query.count()
    limit = max(1, min(limit, 500))
    offset = max(0, offset)
    invoices = query.order_by(Invoice.date.desc(), Invoice.id.desc()).offset(offset).limit(limit).all()
    return invoices, total


# =============================================================================
# Reversal
# =============================================================================

def _reverse_invoice(invoice: Invoice, actor_user_id: int | None) -> dict:
    """Undo one invoice inside the caller's transaction (no commit)."""
    restored = 0
    for item in invoice.items:
        qty = item.quantity - item.returned_quantity
        if qty > 0:
            product = lock_for_update(db.session.query(Product).filter_by(id=item.product_id)).first()
            if product:
                product.quantity_on_hand += qty
                restored += qty

    released_afn = remove_entries_for_invoice(invoice)

    received_afn = int(
        db.session.query(func.coalesce(func.sum(Payment.amount_afn_cents), 0))
        .filter(Payment.invoice_id == invoice.id)
        .scalar()
    )
    if received_afn:
        cash_service.apply_cash_entry(
            amount_afn_cents=-received_afn,
            entry_type=CASH_SALE_DELETE,
            description=f"Sale {invoice.invoice_number} deleted",
            reference_type="invoice",
            reference_id=invoice.id,
            actor_user_id=actor_user_id,
        )

    summary = {
        "invoice_id": invoice.id,
        "invoice_number": invoice.invoice_number,
        "restored_quantity": restored,
        "released_afn_cents": released_afn,
        "reversed_cash_afn_cents": received_afn,
    }
    db.session.delete(invoice)
    db.session.flush()
    return summary


def delete_sale(invoice_id: int, *, actor: User, password: str | None) -> dict:
    auth_service.verify_admin_key(actor, password)

    def _op():
        invoice = lock_for_update(db.session.query(Invoice).filter_by(id=invoice_id)).first()
        if not invoice:
            raise NotFoundError("Invoice not found")
        return _reverse_invoice(invoice, actor.id)

    summary = run_with_retry(_op)
    audit_service.log_action(
        user_id=actor.id,
        action="DELETE_SALE",
        entity="invoice",
        entity_id=invoice_id,
        details=summary,
    )
    return summary


def bulk_delete_sales(invoice_ids: list[int], *, actor: User, password: str | None) -> dict:
    """Reverse several invoices in one transaction; unknown ids are skipped."""
    auth_service.verify_admin_key(actor, password)

    def _op():
        deleted, missing = [], []
        for invoice_id in invoice_ids:
            invoice = lock_for_update(db.session.query(Invoice).filter_by(id=invoice_id)).first()
            if not invoice:
                missing.append(invoice_id)
                continue
            deleted.append(_reverse_invoice(invoice, actor.id))
        return {"deleted": deleted, "deleted_count": len(deleted), "missing": missing}

    result = run_with_retry(_op)
    audit_service.log_action(
        user_id=actor.id,
        action="BULK_DELETE_SALES",
        entity="invoice",
        details={"invoice_ids": [d["invoice_id"] for d in result["deleted"]], "missing": result["missing"]},
    )
    return result


def delete_all_sales(*, actor: User, password: str | None) -> dict:
    """
    Wipe all sales and receivables: every invoice is reversed (stock and cash),
    lending entries and any leftover account payments are removed, and every
    customer balance ends at zero. Lending cash is not returned to the till.
    """
    auth_service.verify_admin_key(actor, password)

    def _op():
        invoices = lock_for_update(db.session.query(Invoice)).all()
        reversed_cash = 0
        for invoice in invoices:
            reversed_cash += _reverse_invoice(invoice, actor.id)["reversed_cash_afn_cents"]

        db.session.query(DebtPayment).delete(synchronize_session="fetch")
        db.session.query(Payment).delete(synchronize_session="fetch")
        db.session.query(CreditEntry).delete(synchronize_session="fetch")
        db.session.query(Customer).update(
            {Customer.outstanding_balance_afn_cents: 0, Customer.version_id: Customer.version_id + 1},
            synchronize_session="fetch",
        )
        return {"deleted_count": len(invoices), "reversed_cash_afn_cents": reversed_cash}

    result = run_with_retry(_op)
    audit_service.log_action(
        user_id=actor.id,
        action="DELETE_ALL_SALES",
        entity="invoice",
        details=result,
    )
    return result
