"""
Customer accounts: creation, account payments (oldest-first), deletion.
"""

import re
from decimal import Decimal

import pytest

from partspos.errors import BusinessRuleError, ExceedsBalanceError, ForbiddenError, ValidationError
from partspos.extensions import db
from partspos.models import CashLedgerEntry, CreditEntry, Customer, DebtPayment, Invoice
from partspos.models.credit import CREDIT_STATUS_SETTLED
from partspos.models.ledger import CASH_CUSTOMER_PAYMENT
from partspos.models.sales import INVOICE_STATUS_PAID, INVOICE_STATUS_PARTIAL
from partspos.services import cash_service, customers_service, deposit_service, sales_service

from conftest import PASSWORD, assert_ledger_consistent

RATE_100 = Decimal("100")


def _credit_sale(product, customer, unit_price_cents):
    return sales_service.create_sale(
        items=[{"product_id": product.id, "quantity": 1, "unit_price_cents": unit_price_cents}],
        customer_id=customer.id,
        exchange_rate=RATE_100,
    )


class TestCustomerRecords:
    def test_create_assigns_display_id(self, db_session):
        customer = customers_service.create_customer({"name": "Ahmad Zia", "phone": "0799"})
        assert re.fullmatch(r"[A-Z]{2}\d{5}", customer.display_id)
        assert customer.outstanding_balance_afn_cents == 0

    def test_create_requires_name(self, db_session):
        with pytest.raises(ValidationError):
            customers_service.create_customer({"phone": "0799"})

    def test_create_rejects_unknown_field(self, db_session):
        with pytest.raises(ValidationError):
            customers_service.create_customer({"name": "X", "outstanding_balance_afn_cents": 5})

    def test_update_ignores_display_id(self, customer):
        updated = customers_service.update_customer(customer.id, {"display_id": "ZZ99999", "phone": "0711"})
        assert updated.display_id == "KB40213"
        assert updated.phone == "0711"

    def test_toggle_and_list(self, customer):
        customers_service.toggle_customer_status(customer.id)
        assert customers_service.list_customers(status="active") == []
        assert [c.id for c in customers_service.list_customers(status="archived")] == [customer.id]
        assert len(customers_service.list_customers(status="all", search="karim")) == 1


# =============================================================================
# ACCOUNT PAYMENT (FIFO)
# =============================================================================


class TestCustomerPayment:
    def test_oldest_entry_is_paid_first(self, product, customer, cashier_user):
        first = _credit_sale(product, customer, 1000)   # 100000 AFN cents
        second = _credit_sale(product, customer, 500)   # 50000 AFN cents
        assert db.session.get(Customer, customer.id).outstanding_balance_afn_cents == 150000

        result = customers_service.receive_customer_payment(
            customer.id, amount_afn_cents=120000, user_id=cashier_user.id,
        )

        assert result["amount_afn_cents"] == 120000
        assert [a["amount_afn_cents"] for a in result["applied"]] == [100000, 20000]
        assert result["outstanding_balance_afn_cents"] == 30000

        db.session.expire_all()
        entries = {e.invoice_id: e for e in db.session.query(CreditEntry).all()}
        assert entries[first.id].remaining_afn_cents == 0
        assert entries[first.id].status == CREDIT_STATUS_SETTLED
        assert entries[second.id].remaining_afn_cents == 30000
        assert db.session.get(Invoice, first.id).status == INVOICE_STATUS_PAID
        assert db.session.get(Invoice, second.id).status == INVOICE_STATUS_PARTIAL
        assert db.session.get(Invoice, second.id).outstanding_cents == 300
        assert db.session.query(DebtPayment).count() == 2
        assert cash_service.get_cash_balance() == 120000
        assert db.session.query(CashLedgerEntry).filter_by(entry_type=CASH_CUSTOMER_PAYMENT).count() == 1
        assert_ledger_consistent()

    def test_payment_within_tolerance_settles_all(self, product, customer):
        _credit_sale(product, customer, 1000)
        _credit_sale(product, customer, 500)

        result = customers_service.receive_customer_payment(customer.id, amount_afn_cents=149500)

        assert result["amount_afn_cents"] == 150000
        assert result["outstanding_balance_afn_cents"] == 0
        assert_ledger_consistent()

    def test_overpayment_rejected(self, product, customer):
        _credit_sale(product, customer, 1000)

        with pytest.raises(ExceedsBalanceError):
            customers_service.receive_customer_payment(customer.id, amount_afn_cents=101001)

        db.session.expire_all()
        assert db.session.get(Customer, customer.id).outstanding_balance_afn_cents == 100000
        assert cash_service.get_cash_balance() == 0

    def test_no_balance(self, customer):
        with pytest.raises(BusinessRuleError):
            customers_service.receive_customer_payment(customer.id, amount_afn_cents=100)

    def test_usd_amount_converted_at_given_rate(self, product, customer):
        _credit_sale(product, customer, 1000)
        result = customers_service.receive_customer_payment(
            customer.id, amount_cents=400, exchange_rate=RATE_100,
        )
        assert result["amount_afn_cents"] == 40000


# =============================================================================
# DELETE
# =============================================================================


class TestDeleteCustomer:
    def test_settled_customer_is_purged(self, product, customer, admin_user):
        invoice = _credit_sale(product, customer, 1000)
        customer_id, invoice_id = customer.id, invoice.id
        customers_service.receive_customer_payment(customer_id, amount_afn_cents=100000)

        customers_service.delete_customer(customer_id, actor=admin_user, password=PASSWORD)

        db.session.expire_all()
        assert db.session.get(Customer, customer_id) is None
        assert db.session.get(Invoice, invoice_id) is None
        assert db.session.query(CreditEntry).count() == 0
        assert customer not in db.session
        assert invoice not in db.session

    def test_customer_with_balance_is_refused(self, product, customer, admin_user):
        _credit_sale(product, customer, 1000)
        with pytest.raises(BusinessRuleError):
            customers_service.delete_customer(customer.id, actor=admin_user, password=PASSWORD)
        assert db.session.get(Customer, customer.id) is not None

    def test_customer_with_undrawn_deposit_is_refused(self, customer, admin_user):
        deposit_service.create_deposit(customer_id=customer.id, amount_afn_cents=5000)
        with pytest.raises(BusinessRuleError):
            customers_service.delete_customer(customer.id, actor=admin_user, password=PASSWORD)

    def test_wrong_password(self, customer, admin_user):
        with pytest.raises(ForbiddenError):
            customers_service.delete_customer(customer.id, actor=admin_user, password="Nope12345")

    def test_bulk_delete_reports_failures(self, product, customer, admin_user):
        clean_id = customers_service.create_customer({"name": "No Debt"}).id
        customer_id = customer.id
        _credit_sale(product, customer, 1000)

        result = customers_service.bulk_delete_customers(
            [clean_id, customer_id, 9999], actor=admin_user, password=PASSWORD,
        )

        assert result["deleted"] == [clean_id]
        failed = {f["id"] for f in result["failed"]}
        assert failed == {customer_id, 9999}
