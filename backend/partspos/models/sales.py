from __future__ import annotations

from ..extensions import db
from ..money import afn_to_usd_cents, format_rate, usd_to_afn_cents
from ..time_utils import to_utc_z, utcnow

INVOICE_STATUS_DRAFT = "DRAFT"
INVOICE_STATUS_PARTIAL = "PARTIAL"
INVOICE_STATUS_PAID = "PAID"
INVOICE_STATUS_OVERDUE = "OVERDUE"
INVOICE_STATUS_CANCELLED = "CANCELLED"

PAYMENT_METHODS = {"CASH", "CARD", "CREDIT", "MOBILE_PAY", "BANK_TRANSFER"}


class Invoice(db.Model):
    """
    Sale document.

    Canonical currency is USD. The exchange rate is locked at sale time, so the AFN
    total is derived from (total_cents, exchange_rate) and never stored twice.
    """
    __tablename__ = "invoices"
    __table_args__ = (
        db.Index("ix_invoices_customer_date", "customer_id", "date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # e.g. "INV-2026-000123"
    invoice_number = db.Column(db.String(32), nullable=False, unique=True)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)
    paid_cents = db.Column(db.Integer, nullable=False, default=0)
    outstanding_cents = db.Column(db.Integer, nullable=False, default=0)
    change_due_cents = db.Column(db.Integer, nullable=False, default=0)  # cash over-tender

    exchange_rate = db.Column(db.Numeric(12, 4), nullable=False)

    status = db.Column(db.String(16), nullable=False, default=INVOICE_STATUS_DRAFT, index=True)
    notes = db.Column(db.Text, nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    customer = db.relationship("Customer", backref=db.backref("invoices", lazy=True))
    user = db.relationship("User")
    items = db.relationship(
        "InvoiceItem",
        backref="invoice",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="InvoiceItem.id",
    )
    payments = db.relationship(
        "Payment",
        backref="invoice",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="Payment.id",
    )

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def total_local_afn_cents(self) -> int:
        return usd_to_afn_cents(self.total_cents, self.exchange_rate)

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "invoice_number": self.invoice_number,
            "customer_id": self.customer_id,
            "customer_name": self.customer.name if self.customer else None,
            "user_id": self.user_id,
            "date": to_utc_z(self.date),
            "subtotal_cents": self.subtotal_cents,
            "tax_cents": self.tax_cents,
            "discount_cents": self.discount_cents,
            "total_cents": self.total_cents,
            "paid_cents": self.paid_cents,
            "outstanding_cents": self.outstanding_cents,
            "change_due_cents": self.change_due_cents,
            "exchange_rate": format_rate(self.exchange_rate),
            "total_local_afn_cents": self.total_local_afn_cents,
            "status": self.status,
            "notes": self.notes,
            "version_id": self.version_id,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
            data["payments"] = [p.to_dict() for p in self.payments]
        return data


class InvoiceItem(db.Model):
    """Line item; returned_quantity never exceeds quantity."""
    __tablename__ = "invoice_items"
    __table_args__ = (
        db.CheckConstraint("returned_quantity <= quantity", name="ck_invoice_items_returned_le_quantity"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    line_total_cents = db.Column(db.Integer, nullable=False)
    returned_quantity = db.Column(db.Integer, nullable=False, default=0)

    product = db.relationship("Product")

    @property
    def returnable_quantity(self) -> int:
        return self.quantity - self.returned_quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_id": self.invoice_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "sku": self.product.sku if self.product else None,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "discount_cents": self.discount_cents,
            "line_total_cents": self.line_total_cents,
            "returned_quantity": self.returned_quantity,
        }


class Payment(db.Model):
    """
    Money received against an invoice or a customer account.

    Canonical in AFN with the rate it was taken at; USD is derived. Refunds are
    negative amounts. Rows mirrored from debt payments point at their credit entry.
    """
    __tablename__ = "payments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=True, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    credit_entry_id = db.Column(db.Integer, db.ForeignKey("credit_entries.id"), nullable=True, index=True)

    amount_afn_cents = db.Column(db.Integer, nullable=False)
    exchange_rate = db.Column(db.Numeric(12, 4), nullable=False)

    method = db.Column(db.String(32), nullable=False, default="CASH")
    reference = db.Column(db.String(128), nullable=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    customer = db.relationship("Customer", backref=db.backref("payments", lazy=True))

    @property
    def amount_cents(self) -> int:
        return afn_to_usd_cents(self.amount_afn_cents, self.exchange_rate)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_id": self.invoice_id,
            "customer_id": self.customer_id,
            "credit_entry_id": self.credit_entry_id,
            "amount_afn_cents": self.amount_afn_cents,
            "amount_cents": self.amount_cents,
            "exchange_rate": format_rate(self.exchange_rate),
            "method": self.method,
            "reference": self.reference,
            "user_id": self.user_id,
            "created_at": to_utc_z(self.created_at),
        }
