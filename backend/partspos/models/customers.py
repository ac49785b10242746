from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z

WALK_IN_NAME = "Walk-in Customer"
WALK_IN_ADDRESS = "Store Counter"


class Customer(db.Model):
    """
    Customer account.

    outstanding_balance_afn_cents is a cached aggregate: it always equals the sum of
    remaining AFN over the customer's non-settled credit entries and is only changed
    inside the same transaction as the entry it mirrors.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.Index("ix_customers_name", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-facing id: two letters + five digits (e.g. "KB40213")
    display_id = db.Column(db.String(7), nullable=False, unique=True)

    name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(64), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    address = db.Column(db.String(512), nullable=True)

    credit_limit_cents = db.Column(db.Integer, nullable=False, default=0)
    payment_terms = db.Column(db.String(64), nullable=True)

    outstanding_balance_afn_cents = db.Column(db.Integer, nullable=False, default=0)

    is_walk_in = db.Column(db.Boolean, nullable=False, default=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def outstanding_balance_cents(self) -> int:
        """USD equivalent, derived from each open entry at its locked rate."""
        from .credit import CreditEntry, CREDIT_STATUS_SETTLED

        entries = (
            db.session.query(CreditEntry)
            .filter(
                CreditEntry.customer_id == self.id,
                CreditEntry.status != CREDIT_STATUS_SETTLED,
            )
            .all()
        )
        return sum(e.remaining_cents for e in entries)

    def to_dict(self, include_usd: bool = True) -> dict:
        data = {
            "id": self.id,
            "display_id": self.display_id,
            "name": self.name,
            "phone": self.phone,
            "email": self.email,
            "address": self.address,
            "credit_limit_cents": self.credit_limit_cents,
            "payment_terms": self.payment_terms,
            "outstanding_balance_afn_cents": self.outstanding_balance_afn_cents,
            "is_walk_in": self.is_walk_in,
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_usd:
            data["outstanding_balance_cents"] = self.outstanding_balance_cents
        return data
