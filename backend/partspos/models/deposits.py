from __future__ import annotations

from sqlalchemy.ext.hybrid import hybrid_property

from ..extensions import db
from ..time_utils import to_utc_z, utcnow

DEPOSIT_STATUS_ACTIVE = "ACTIVE"
DEPOSIT_STATUS_PARTIAL = "PARTIAL"
DEPOSIT_STATUS_WITHDRAWN = "WITHDRAWN"

DEPOSIT_STATUSES = {DEPOSIT_STATUS_ACTIVE, DEPOSIT_STATUS_PARTIAL, DEPOSIT_STATUS_WITHDRAWN}


class CustomerDeposit(db.Model):
    """AFN money held on behalf of a customer; remaining = original - withdrawn."""
    __tablename__ = "customer_deposits"
    __table_args__ = (
        db.CheckConstraint("withdrawn_afn_cents <= original_afn_cents", name="ck_deposits_withdrawn_le_original"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # e.g. "DEP-0042"
    deposit_number = db.Column(db.String(32), nullable=False, unique=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)

    original_afn_cents = db.Column(db.Integer, nullable=False)
    withdrawn_afn_cents = db.Column(db.Integer, nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default=DEPOSIT_STATUS_ACTIVE, index=True)
    notes = db.Column(db.Text, nullable=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    deposited_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    customer = db.relationship("Customer", backref=db.backref("deposits", lazy=True))
    withdrawals = db.relationship(
        "DepositWithdrawal",
        backref="deposit",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="DepositWithdrawal.id",
    )

    __mapper_args__ = {"version_id_col": version_id}

    @hybrid_property
    def remaining_afn_cents(self):
        return self.original_afn_cents - self.withdrawn_afn_cents

    def to_dict(self, include_withdrawals: bool = False) -> dict:
        data = {
            "id": self.id,
            "deposit_number": self.deposit_number,
            "customer_id": self.customer_id,
            "customer_name": self.customer.name if self.customer else None,
            "original_afn_cents": self.original_afn_cents,
            "withdrawn_afn_cents": self.withdrawn_afn_cents,
            "remaining_afn_cents": self.remaining_afn_cents,
            "status": self.status,
            "notes": self.notes,
            "user_id": self.user_id,
            "deposited_at": to_utc_z(self.deposited_at),
            "version_id": self.version_id,
        }
        if include_withdrawals:
            data["withdrawals"] = [w.to_dict() for w in self.withdrawals]
        return data


class DepositWithdrawal(db.Model):
    __tablename__ = "deposit_withdrawals"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    deposit_id = db.Column(db.Integer, db.ForeignKey("customer_deposits.id"), nullable=False, index=True)
    amount_afn_cents = db.Column(db.Integer, nullable=False)
    notes = db.Column(db.Text, nullable=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    withdrawn_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "deposit_id": self.deposit_id,
            "amount_afn_cents": self.amount_afn_cents,
            "notes": self.notes,
            "user_id": self.user_id,
            "withdrawn_at": to_utc_z(self.withdrawn_at),
        }
