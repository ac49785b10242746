from __future__ import annotations

from sqlalchemy.ext.hybrid import hybrid_property

from ..extensions import db
from ..money import afn_to_usd_cents, format_rate
from ..time_utils import to_utc_z, utcnow

ENTRY_KIND_SALE_CREDIT = "SALE_CREDIT"
ENTRY_KIND_LENDING = "LENDING"

CREDIT_STATUS_ACTIVE = "ACTIVE"
CREDIT_STATUS_DUE_SOON = "DUE_SOON"
CREDIT_STATUS_OVERDUE = "OVERDUE"
CREDIT_STATUS_SETTLED = "SETTLED"

CREDIT_STATUSES = {
    CREDIT_STATUS_ACTIVE,
    CREDIT_STATUS_DUE_SOON,
    CREDIT_STATUS_OVERDUE,
    CREDIT_STATUS_SETTLED,
}


class CreditEntry(db.Model):
    """
    A receivable owed by a customer: unpaid sale balance or cash lent.

    Canonical in AFN with the rate locked when the entry was opened.
    remaining = original - paid - credited, where credited is reduced debt from
    returned goods. status is a cache of the rule in debt_service.derive_debt_status.
    """
    __tablename__ = "credit_entries"
    __table_args__ = (
        db.Index("ix_credit_entries_customer_status", "customer_id", "status"),
        db.Index("ix_credit_entries_due_date", "due_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    kind = db.Column(db.String(16), nullable=False, default=ENTRY_KIND_SALE_CREDIT, index=True)

    # LEND-<year>-<seq> for lending; sale credit is identified by its invoice
    reference_number = db.Column(db.String(32), nullable=True, unique=True)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=True, index=True)

    exchange_rate = db.Column(db.Numeric(12, 4), nullable=False)
    original_afn_cents = db.Column(db.Integer, nullable=False)
    paid_afn_cents = db.Column(db.Integer, nullable=False, default=0)
    credited_afn_cents = db.Column(db.Integer, nullable=False, default=0)

    opened_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    due_date = db.Column(db.DateTime(timezone=True), nullable=False)
    status = db.Column(db.String(16), nullable=False, default=CREDIT_STATUS_ACTIVE)
    notes = db.Column(db.Text, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    customer = db.relationship("Customer", backref=db.backref("credit_entries", lazy=True))
    invoice = db.relationship("Invoice", backref=db.backref("credit_entries", lazy=True))
    debt_payments = db.relationship(
        "DebtPayment",
        backref="credit_entry",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="DebtPayment.id",
    )
    mirrored_payments = db.relationship("Payment", backref="credit_entry", lazy=True)

    __mapper_args__ = {"version_id_col": version_id}

    @hybrid_property
    def remaining_afn_cents(self):
        return self.original_afn_cents - self.paid_afn_cents - self.credited_afn_cents

    @property
    def original_cents(self) -> int:
        return afn_to_usd_cents(self.original_afn_cents, self.exchange_rate)

    @property
    def paid_cents(self) -> int:
        return afn_to_usd_cents(self.paid_afn_cents, self.exchange_rate)

    @property
    def remaining_cents(self) -> int:
        return afn_to_usd_cents(self.remaining_afn_cents, self.exchange_rate)

    def to_dict(self, include_payments: bool = False) -> dict:
        data = {
            "id": self.id,
            "kind": self.kind,
            "reference_number": self.reference_number,
            "customer_id": self.customer_id,
            "customer_name": self.customer.name if self.customer else None,
            "invoice_id": self.invoice_id,
            "invoice_number": self.invoice.invoice_number if self.invoice else None,
            "exchange_rate": format_rate(self.exchange_rate),
            "original_afn_cents": self.original_afn_cents,
            "paid_afn_cents": self.paid_afn_cents,
            "credited_afn_cents": self.credited_afn_cents,
            "remaining_afn_cents": self.remaining_afn_cents,
            "original_cents": self.original_cents,
            "paid_cents": self.paid_cents,
            "remaining_cents": self.remaining_cents,
            "opened_at": to_utc_z(self.opened_at),
            "due_date": to_utc_z(self.due_date),
            "status": self.status,
            "notes": self.notes,
            "version_id": self.version_id,
        }
        if include_payments:
            data["payments"] = [p.to_dict() for p in self.debt_payments]
        return data


class DebtPayment(db.Model):
    """Payment applied to one credit entry (AFN canonical, USD derived)."""
    __tablename__ = "debt_payments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    credit_entry_id = db.Column(db.Integer, db.ForeignKey("credit_entries.id"), nullable=False, index=True)
    amount_afn_cents = db.Column(db.Integer, nullable=False)
    method = db.Column(db.String(32), nullable=False, default="CASH")
    reference = db.Column(db.String(128), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    @property
    def amount_cents(self) -> int:
        return afn_to_usd_cents(self.amount_afn_cents, self.credit_entry.exchange_rate)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "credit_entry_id": self.credit_entry_id,
            "amount_afn_cents": self.amount_afn_cents,
            "amount_cents": self.amount_cents,
            "method": self.method,
            "reference": self.reference,
            "notes": self.notes,
            "user_id": self.user_id,
            "paid_at": to_utc_z(self.paid_at),
        }
