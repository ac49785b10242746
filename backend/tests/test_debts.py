"""
Credit entries: status derivation, payments, lending, deletion.
"""

from datetime import datetime, timedelta

import pytest

from partspos.errors import AlreadySettledError, ExceedsBalanceError, ForbiddenError, NotFoundError, ValidationError
from partspos.extensions import db
from partspos.models import CashLedgerEntry, CreditEntry, Customer, DebtPayment, Invoice, Payment
from partspos.models.credit import (
    CREDIT_STATUS_ACTIVE,
    CREDIT_STATUS_DUE_SOON,
    CREDIT_STATUS_OVERDUE,
    CREDIT_STATUS_SETTLED,
    ENTRY_KIND_LENDING,
)
from partspos.models.ledger import CASH_LENDING, CASH_LENDING_DELETE
from partspos.models.sales import INVOICE_STATUS_OVERDUE, INVOICE_STATUS_PAID, INVOICE_STATUS_PARTIAL
from partspos.services import cash_service, debt_service, sales_service
from partspos.time_utils import utcnow

from conftest import PASSWORD, assert_ledger_consistent


def _credit_sale(product, customer, qty=2, paid_cents=2000, due_date=None):
    invoice = sales_service.create_sale(
        items=[{"product_id": product.id, "quantity": qty}],
        customer_id=customer.id,
        paid_cents=paid_cents,
        due_date=due_date,
    )
    entry = db.session.query(CreditEntry).filter_by(invoice_id=invoice.id).one()
    return invoice, entry


# =============================================================================
# STATUS
# =============================================================================


class TestDeriveStatus:
    NOW = datetime(2026, 5, 1, 12, 0, 0)

    @pytest.mark.parametrize("offset,expected", [
        (timedelta(days=10), CREDIT_STATUS_ACTIVE),
        (timedelta(days=1, hours=1), CREDIT_STATUS_ACTIVE),
        (timedelta(days=1), CREDIT_STATUS_DUE_SOON),
        (timedelta(hours=3), CREDIT_STATUS_DUE_SOON),
        (timedelta(0), CREDIT_STATUS_DUE_SOON),
        (timedelta(minutes=-1), CREDIT_STATUS_OVERDUE),
        (timedelta(days=-40), CREDIT_STATUS_OVERDUE),
    ])
    def test_by_days_until_due(self, offset, expected):
        assert debt_service.derive_debt_status(self.NOW + offset, 100, self.NOW) == expected

    def test_nothing_remaining_is_settled(self):
        due = self.NOW - timedelta(days=5)
        assert debt_service.derive_debt_status(due, 0, self.NOW) == CREDIT_STATUS_SETTLED

    def test_refresh_marks_overdue_and_invoice(self, rate, product, customer):
        invoice, entry = _credit_sale(product, customer, due_date=utcnow() + timedelta(days=3))
        assert entry.status == CREDIT_STATUS_ACTIVE

        changed = debt_service.refresh_debt_statuses(now=utcnow() + timedelta(days=5))

        assert changed == 1
        db.session.expire_all()
        assert db.session.get(CreditEntry, entry.id).status == CREDIT_STATUS_OVERDUE
        assert db.session.get(Invoice, invoice.id).status == INVOICE_STATUS_OVERDUE

    def test_refresh_returns_invoice_to_partial_when_no_longer_overdue(self, rate, product, customer):
        invoice, entry = _credit_sale(product, customer, due_date=utcnow() + timedelta(days=3))
        debt_service.refresh_debt_statuses(now=utcnow() + timedelta(days=5))

        debt_service.refresh_debt_statuses()

        db.session.expire_all()
        assert db.session.get(CreditEntry, entry.id).status == CREDIT_STATUS_ACTIVE
        assert db.session.get(Invoice, invoice.id).status == INVOICE_STATUS_PARTIAL


# =============================================================================
# PAYMENTS
# =============================================================================


class TestDebtPayment:
    def test_partial_payment(self, rate, product, customer, cashier_user):
        invoice, entry = _credit_sale(product, customer)  # 210000 AFN cents owed

        payment = debt_service.record_debt_payment(
            entry.id, amount_afn_cents=70000, user_id=cashier_user.id,
        )

        assert payment.amount_afn_cents == 70000
        db.session.expire_all()
        entry = db.session.get(CreditEntry, entry.id)
        assert entry.remaining_afn_cents == 140000
        assert entry.status == CREDIT_STATUS_ACTIVE
        assert db.session.get(Customer, customer.id).outstanding_balance_afn_cents == 140000
        assert db.session.get(Invoice, invoice.id).outstanding_cents == 2000

        mirrored = db.session.query(Payment).filter_by(credit_entry_id=entry.id).one()
        assert mirrored.reference == "Debt Payment"
        assert mirrored.invoice_id == invoice.id
        assert_ledger_consistent()

    def test_payment_by_usd_uses_entry_rate(self, rate, product, customer):
        _, entry = _credit_sale(product, customer)
        payment = debt_service.record_debt_payment(entry.id, amount_cents=1000)
        assert payment.amount_afn_cents == 70000

    def test_within_tolerance_snaps_and_settles(self, rate, product, customer):
        invoice, entry = _credit_sale(product, customer)

        payment = debt_service.record_debt_payment(entry.id, amount_afn_cents=209500)

        assert payment.amount_afn_cents == 210000
        db.session.expire_all()
        entry = db.session.get(CreditEntry, entry.id)
        assert entry.status == CREDIT_STATUS_SETTLED
        assert entry.remaining_afn_cents == 0
        assert db.session.get(Invoice, invoice.id).status == INVOICE_STATUS_PAID
        assert db.session.get(Customer, customer.id).outstanding_balance_afn_cents == 0
        assert cash_service.get_cash_balance() == 140000 + 210000
        assert_ledger_consistent()

    def test_overpay_at_tolerance_edge_is_accepted(self, rate, product, customer):
        _, entry = _credit_sale(product, customer)
        payment = debt_service.record_debt_payment(entry.id, amount_afn_cents=211000)
        assert payment.amount_afn_cents == 210000

    def test_overpay_beyond_tolerance_is_rejected(self, rate, product, customer):
        _, entry = _credit_sale(product, customer)

        with pytest.raises(ExceedsBalanceError):
            debt_service.record_debt_payment(entry.id, amount_afn_cents=211001)

        db.session.expire_all()
        assert db.session.get(CreditEntry, entry.id).paid_afn_cents == 0
        assert db.session.query(DebtPayment).count() == 0
        assert cash_service.get_cash_balance() == 140000

    def test_settled_debt_rejects_payment(self, rate, product, customer):
        _, entry = _credit_sale(product, customer)
        debt_service.record_debt_payment(entry.id, amount_afn_cents=210000)

        with pytest.raises(AlreadySettledError):
            debt_service.record_debt_payment(entry.id, amount_afn_cents=100)

    @pytest.mark.parametrize("kwargs", [{}, {"amount_afn_cents": 0}, {"amount_afn_cents": -5}])
    def test_invalid_amount(self, rate, product, customer, kwargs):
        _, entry = _credit_sale(product, customer)
        with pytest.raises(ValidationError):
            debt_service.record_debt_payment(entry.id, **kwargs)

    def test_many_small_payments_keep_invoice_in_step_with_entry(self, rate, product, customer):
        invoice, entry = _credit_sale(product, customer, qty=1, paid_cents=2400)
        assert entry.original_afn_cents == 7000

        for _ in range(100):
            debt_service.record_debt_payment(entry.id, amount_afn_cents=35)

        db.session.expire_all()
        entry = db.session.get(CreditEntry, entry.id)
        invoice = db.session.get(Invoice, invoice.id)
        assert entry.remaining_afn_cents == 3500
        assert entry.status == CREDIT_STATUS_ACTIVE
        assert invoice.outstanding_cents == 50
        assert invoice.paid_cents == 2450
        assert invoice.status == INVOICE_STATUS_PARTIAL
        assert db.session.get(Customer, customer.id).outstanding_balance_afn_cents == 3500
        assert_ledger_consistent()

    def test_unknown_debt(self, db_session):
        with pytest.raises(NotFoundError):
            debt_service.record_debt_payment(404, amount_afn_cents=100)


class TestUpdateDebt:
    def test_moving_due_date_rederives_status(self, rate, product, customer):
        _, entry = _credit_sale(product, customer)

        updated = debt_service.update_debt(entry.id, due_date=utcnow() - timedelta(days=1), notes="called")

        assert updated.status == CREDIT_STATUS_OVERDUE
        assert updated.notes == "called"

    def test_extending_overdue_debt_restores_partial_invoice(self, rate, product, customer):
        invoice, entry = _credit_sale(product, customer, due_date=utcnow() + timedelta(days=3))
        debt_service.refresh_debt_statuses(now=utcnow() + timedelta(days=5))
        db.session.expire_all()
        assert db.session.get(Invoice, invoice.id).status == INVOICE_STATUS_OVERDUE

        debt_service.update_debt(entry.id, due_date=utcnow() + timedelta(days=20))

        db.session.expire_all()
        assert db.session.get(CreditEntry, entry.id).status == CREDIT_STATUS_ACTIVE
        assert db.session.get(Invoice, invoice.id).status == INVOICE_STATUS_PARTIAL


# =============================================================================
# LENDING
# =============================================================================


class TestLending:
    def test_create_lending(self, rate, customer, manager_user):
        entry = debt_service.create_lending(
            customer_id=customer.id,
            due_date=utcnow() + timedelta(days=14),
            amount_afn_cents=500000,
            user_id=manager_user.id,
        )

        assert entry.kind == ENTRY_KIND_LENDING
        assert entry.reference_number == f"LEND-{utcnow().year}-000001"
        assert entry.invoice_id is None
        assert entry.notes == "Cash Lending"
        assert db.session.get(Customer, customer.id).outstanding_balance_afn_cents == 500000
        assert cash_service.get_cash_balance() == -500000
        assert db.session.query(CashLedgerEntry).filter_by(entry_type=CASH_LENDING).count() == 1
        assert_ledger_consistent()

    def test_lending_in_usd(self, rate, customer):
        entry = debt_service.create_lending(
            customer_id=customer.id,
            due_date=utcnow() + timedelta(days=14),
            amount_cents=1000,
        )
        assert entry.original_afn_cents == 70000

    def test_lending_requires_due_date(self, rate, customer):
        with pytest.raises(ValidationError):
            debt_service.create_lending(customer_id=customer.id, due_date=None, amount_afn_cents=100)

    def test_create_then_delete_nets_to_zero(self, rate, customer, admin_user):
        entry = debt_service.create_lending(
            customer_id=customer.id,
            due_date=utcnow() + timedelta(days=14),
            amount_afn_cents=500000,
        )
        debt_service.record_debt_payment(entry.id, amount_afn_cents=200000)
        assert cash_service.get_cash_balance() == -300000

        result = debt_service.delete_debt(entry.id, actor=admin_user, password=PASSWORD)

        assert result["cash_restored_afn_cents"] == 300000
        assert result["released_afn_cents"] == 300000
        db.session.expire_all()
        assert cash_service.get_cash_balance() == 0
        assert db.session.get(Customer, customer.id).outstanding_balance_afn_cents == 0
        assert db.session.query(Payment).count() == 0
        assert db.session.query(CashLedgerEntry).filter_by(entry_type=CASH_LENDING_DELETE).count() == 1
        assert_ledger_consistent()


class TestDeleteDebt:
    def test_sale_credit_is_written_off(self, rate, product, customer, manager_user):
        invoice, entry = _credit_sale(product, customer)
        cash_before = cash_service.get_cash_balance()

        debt_service.delete_debt(entry.id, actor=manager_user, password=PASSWORD)

        db.session.expire_all()
        assert db.session.get(CreditEntry, entry.id) is None
        invoice = db.session.get(Invoice, invoice.id)
        assert invoice.outstanding_cents == 0
        assert invoice.status == INVOICE_STATUS_PAID
        assert db.session.get(Customer, customer.id).outstanding_balance_afn_cents == 0
        assert cash_service.get_cash_balance() == cash_before
        assert_ledger_consistent()

    def test_wrong_password(self, rate, product, customer, manager_user):
        _, entry = _credit_sale(product, customer)
        with pytest.raises(ForbiddenError):
            debt_service.delete_debt(entry.id, actor=manager_user, password="Wrong1234")
        assert db.session.get(CreditEntry, entry.id) is not None


class TestDebtQueries:
    def test_summary_and_debtors(self, rate, product, customer):
        _credit_sale(product, customer)
        debt_service.create_lending(
            customer_id=customer.id,
            due_date=utcnow() - timedelta(days=1),
            amount_afn_cents=10000,
        )

        summary = debt_service.get_debt_summary()
        assert summary["total_outstanding_afn_cents"] == 220000
        assert summary["overdue_afn_cents"] == 10000
        assert summary["lending_afn_cents"] == 10000
        assert summary["debtor_count"] == 1

        debtors = debt_service.list_debtors()
        assert len(debtors) == 1
        assert debtors[0]["outstanding_balance_afn_cents"] == 220000
        assert debtors[0]["overdue_count"] == 1

    def test_list_filters(self, rate, product, customer):
        _credit_sale(product, customer)
        debt_service.create_lending(
            customer_id=customer.id,
            due_date=utcnow() + timedelta(days=5),
            amount_afn_cents=10000,
        )
        assert len(debt_service.list_debts(kind=ENTRY_KIND_LENDING)) == 1
        assert len(debt_service.list_debts(customer_id=customer.id)) == 2
        with pytest.raises(ValidationError):
            debt_service.list_debts(status="BOGUS")
