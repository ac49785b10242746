# Overview: Returns against an invoice: stock back, debt reduced first, cash refunded after.

"""
Return Service

Returned goods are valued at their invoice unit price. The refund first reduces
the invoice's open credit entry, measured in AFN at the entry's locked rate; only
the rest is paid back in cash as a negative CASH payment with reference 'RETURN REFUND'.
"""

from __future__ import annotations

from ..errors import BusinessRuleError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Invoice, Payment, Product, User
from ..models.ledger import CASH_SALE_REFUND
from ..money import usd_to_afn_cents
from ..validation import coerce_int
from . import audit_service, auth_service, cash_service
from .concurrency import lock_for_update, run_with_retry
from .debt_service import credit_entry_for_return

RETURN_REFUND_REFERENCE = "RETURN REFUND"


def _normalize_return_items(items) -> list[dict]:
    if not isinstance(items, list) or not items:
        raise ValidationError("At least one item is required", "items")
    normalized = []
    for idx, raw in enumerate(items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{idx}] must be an object", "items")
        item_id = coerce_int(f"items[{idx}].item_id", raw.get("item_id"))
        quantity = coerce_int(f"items[{idx}].quantity", raw.get("quantity"))
        if quantity < 0:
            raise ValidationError(f"items[{idx}].quantity must be >= 0", "items")
        normalized.append({"item_id": item_id, "quantity": quantity})
    return normalized


def return_items(invoice_id: int, items, *, actor: User, password: str | None) -> dict:
    """
    Process a return. Each quantity must be at most quantity - returned_quantity;
    lines with quantity 0 are ignored.
    """
    requested = _normalize_return_items(items)
    auth_service.verify_admin_key(actor, password)

    def _op():
        invoice = lock_for_update(db.session.query(Invoice).filter_by(id=invoice_id)).first()
        if not invoice:
            raise NotFoundError("Invoice not found")

        items_by_id = {item.id: item for item in invoice.items}
        refund_cents = 0
        returned_lines = []

        for line in requested:
            item = items_by_id.get(line["item_id"])
            if item is None:
                raise NotFoundError(f"Item {line['item_id']} not found in this invoice")
            qty = line["quantity"]
            if qty == 0:
                continue
            if qty > item.returnable_quantity:
                raise BusinessRuleError(
                    f"Cannot return {qty} of item {item.id}; only {item.returnable_quantity} returnable",
                    details={"item_id": item.id, "returnable": item.returnable_quantity},
                )

            item.returned_quantity += qty
            product = lock_for_update(db.session.query(Product).filter_by(id=item.product_id)).first()
            if product:
                product.quantity_on_hand += qty
            refund_cents += qty * item.unit_price_cents
            returned_lines.append({"item_id": item.id, "quantity": qty})

        if not returned_lines:
            raise ValidationError("Nothing to return", "items")

        debt_reduced, credited_afn = credit_entry_for_return(invoice, refund_cents)

        cash_refund = refund_cents - debt_reduced
        cash_refund_afn = 0
        if cash_refund > 0:
            cash_refund_afn = usd_to_afn_cents(cash_refund, invoice.exchange_rate)
            db.session.add(Payment(
                invoice_id=invoice.id,
                customer_id=invoice.customer_id,
                amount_afn_cents=-cash_refund_afn,
                exchange_rate=invoice.exchange_rate,
                method="CASH",
                reference=RETURN_REFUND_REFERENCE,
                user_id=actor.id,
            ))
            cash_service.apply_cash_entry(
                amount_afn_cents=-cash_refund_afn,
                entry_type=CASH_SALE_REFUND,
                description=f"Refund on {invoice.invoice_number}",
                reference_type="invoice",
                reference_id=invoice.id,
                actor_user_id=actor.id,
            )

        db.session.flush()
        return {
            "invoice_id": invoice.id,
            "returned": returned_lines,
            "refund_cents": refund_cents,
            "debt_reduced_cents": debt_reduced,
            "debt_reduced_afn_cents": credited_afn,
            "cash_refund_cents": cash_refund,
            "cash_refund_afn_cents": cash_refund_afn,
        }

    result = run_with_retry(_op)
    audit_service.log_action(
        user_id=actor.id,
        action="RETURN_ITEMS",
        entity="invoice",
        entity_id=invoice_id,
        details=result,
    )
    return result
