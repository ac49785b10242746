"""
Sale creation and reversal.

Verifies:
- a sale commits stock, invoice, payment, credit entry and cash together
- a rejected sale leaves nothing behind
- dust below 0.05 USD is written off
- deleting a sale undoes exactly what it did
"""

from datetime import timedelta

import pytest

from partspos.errors import ForbiddenError, InsufficientStockError, InvalidCustomerError, ValidationError
from partspos.extensions import db
from partspos.models import CashLedgerEntry, CreditEntry, Customer, Invoice, Payment, Product
from partspos.models.credit import ENTRY_KIND_SALE_CREDIT
from partspos.models.ledger import CASH_SALE, CASH_SALE_DELETE
from partspos.models.sales import INVOICE_STATUS_PAID, INVOICE_STATUS_PARTIAL
from partspos.services import cash_service, debt_service, sales_service
from partspos.time_utils import utcnow

from conftest import PASSWORD, assert_ledger_consistent


def _sale(product, customer=None, qty=2, paid_cents=0, user=None, **kwargs):
    return sales_service.create_sale(
        items=[{"product_id": product.id, "quantity": qty}],
        customer_id=customer.id if customer else None,
        paid_cents=paid_cents,
        user_id=user.id if user else None,
        **kwargs,
    )


# =============================================================================
# CREATE
# =============================================================================


class TestCreateSale:
    def test_fully_paid_sale(self, rate, product, customer, cashier_user):
        invoice = _sale(product, customer, qty=2, paid_cents=5000, user=cashier_user)

        assert invoice.total_cents == 5000
        assert invoice.status == INVOICE_STATUS_PAID
        assert invoice.outstanding_cents == 0
        assert db.session.get(Product, product.id).quantity_on_hand == 8
        assert db.session.query(CreditEntry).count() == 0
        assert cash_service.get_cash_balance() == 350000  # 5000 * 70

        entry = db.session.query(CashLedgerEntry).filter_by(entry_type=CASH_SALE).one()
        assert entry.reference_id == invoice.id
        assert_ledger_consistent()

    def test_partial_payment_opens_credit(self, rate, product, customer):
        invoice = _sale(product, customer, qty=2, paid_cents=2000)

        assert invoice.status == INVOICE_STATUS_PARTIAL
        assert invoice.outstanding_cents == 3000

        entry = db.session.query(CreditEntry).filter_by(invoice_id=invoice.id).one()
        assert entry.kind == ENTRY_KIND_SALE_CREDIT
        assert entry.original_afn_cents == 210000
        assert entry.remaining_afn_cents == 210000

        assert db.session.get(Customer, customer.id).outstanding_balance_afn_cents == 210000
        assert cash_service.get_cash_balance() == 140000
        assert_ledger_consistent()

    def test_default_due_date_uses_credit_term(self, app, rate, product, customer):
        before = utcnow()
        invoice = _sale(product, customer, qty=1, paid_cents=0)
        entry = db.session.query(CreditEntry).filter_by(invoice_id=invoice.id).one()
        term = timedelta(days=app.config["CREDIT_TERM_DAYS"])
        assert before + term <= entry.due_date <= utcnow() + term

    def test_outstanding_dust_is_written_off(self, rate, product, customer):
        invoice = _sale(product, customer, qty=2, paid_cents=4997)

        assert invoice.outstanding_cents == 0
        assert invoice.status == INVOICE_STATUS_PAID
        assert db.session.query(CreditEntry).count() == 0
        assert db.session.get(Customer, customer.id).outstanding_balance_afn_cents == 0

    def test_overpayment_reports_change(self, rate, product, customer):
        invoice = _sale(product, customer, qty=1, paid_cents=3000)

        assert invoice.paid_cents == 2500
        assert invoice.change_due_cents == 500
        assert cash_service.get_cash_balance() == 175000

    def test_walk_in_customer_is_created_once(self, rate, product):
        first = _sale(product, qty=1, paid_cents=2500)
        second = _sale(product, qty=1, paid_cents=2500)

        walk_ins = db.session.query(Customer).filter_by(is_walk_in=True).all()
        assert len(walk_ins) == 1
        assert first.customer_id == second.customer_id == walk_ins[0].id

    def test_invoice_numbers_are_sequential(self, rate, product, customer):
        first = _sale(product, customer, qty=1, paid_cents=2500)
        second = _sale(product, customer, qty=1, paid_cents=2500)

        year = utcnow().year
        assert first.invoice_number == f"INV-{year}-000001"
        assert second.invoice_number == f"INV-{year}-000002"

    def test_discounts_and_tax(self, rate, product, second_product, customer):
        invoice = sales_service.create_sale(
            items=[
                {"product_id": product.id, "quantity": 1, "discount_cents": 100},
                {"product_id": second_product.id, "quantity": 2, "unit_price_cents": 500},
            ],
            customer_id=customer.id,
            tax_cents=200,
            discount_cents=300,
            paid_cents=10000,
        )
        # subtotal 2500 + 1000, tax 200, discounts 300 + 100
        assert invoice.subtotal_cents == 3500
        assert invoice.discount_cents == 400
        assert invoice.total_cents == 3300
        assert invoice.change_due_cents == 6700


class TestCreateSaleRejected:
    def test_insufficient_stock_leaves_nothing(self, rate, product, second_product, customer):
        with pytest.raises(InsufficientStockError) as exc:
            sales_service.create_sale(
                items=[
                    {"product_id": second_product.id, "quantity": 1},
                    {"product_id": product.id, "quantity": 11},
                ],
                customer_id=customer.id,
                paid_cents=100,
            )
        assert exc.value.details["requested"] == 11

        db.session.expire_all()
        assert db.session.get(Product, product.id).quantity_on_hand == 10
        assert db.session.get(Product, second_product.id).quantity_on_hand == 5
        assert db.session.query(Invoice).count() == 0
        assert db.session.query(Payment).count() == 0
        assert cash_service.get_cash_balance() == 0

    def test_duplicate_lines_are_aggregated_for_stock_check(self, rate, product, customer):
        with pytest.raises(InsufficientStockError):
            sales_service.create_sale(
                items=[
                    {"product_id": product.id, "quantity": 6},
                    {"product_id": product.id, "quantity": 6},
                ],
                customer_id=customer.id,
            )
        db.session.expire_all()
        assert db.session.get(Product, product.id).quantity_on_hand == 10

    def test_unknown_customer(self, rate, product):
        with pytest.raises(InvalidCustomerError):
            sales_service.create_sale(items=[{"product_id": product.id, "quantity": 1}], customer_id=9999)

    @pytest.mark.parametrize("items", [[], None, [{"product_id": 1, "quantity": 0}], [{"product_id": 1, "quantity": 1.5}]])
    def test_invalid_items(self, rate, items):
        with pytest.raises(ValidationError):
            sales_service.create_sale(items=items)

    def test_discount_larger_than_total(self, rate, product, customer):
        with pytest.raises(ValidationError):
            _sale(product, customer, qty=1, discount_cents=5000)
        db.session.expire_all()
        assert db.session.get(Product, product.id).quantity_on_hand == 10


# =============================================================================
# DELETE
# =============================================================================


class TestDeleteSale:
    def test_delete_restores_everything(self, rate, product, customer, admin_user):
        invoice = _sale(product, customer, qty=3, paid_cents=2500)
        entry = db.session.query(CreditEntry).filter_by(invoice_id=invoice.id).one()
        debt_service.record_debt_payment(entry.id, amount_afn_cents=70000)

        summary = sales_service.delete_sale(invoice.id, actor=admin_user, password=PASSWORD)

        assert summary["restored_quantity"] == 3
        assert summary["reversed_cash_afn_cents"] == 175000 + 70000
        db.session.expire_all()
        assert db.session.get(Product, product.id).quantity_on_hand == 10
        assert db.session.get(Customer, customer.id).outstanding_balance_afn_cents == 0
        assert db.session.query(Invoice).count() == 0
        assert db.session.query(CreditEntry).count() == 0
        assert db.session.query(Payment).count() == 0
        assert cash_service.get_cash_balance() == 0
        assert db.session.query(CashLedgerEntry).filter_by(entry_type=CASH_SALE_DELETE).count() == 1
        assert_ledger_consistent()

    def test_non_admin_needs_admin_password(self, rate, product, customer, admin_user, cashier_user):
        invoice = _sale(product, customer, qty=1, paid_cents=2500)

        with pytest.raises(ForbiddenError):
            sales_service.delete_sale(invoice.id, actor=cashier_user, password=PASSWORD + "x")
        assert db.session.get(Invoice, invoice.id) is not None

        # any active admin's password works as the master key
        sales_service.delete_sale(invoice.id, actor=cashier_user, password=PASSWORD)
        assert db.session.get(Invoice, invoice.id) is None

    def test_missing_password(self, rate, product, customer, admin_user):
        invoice = _sale(product, customer, qty=1, paid_cents=2500)
        with pytest.raises(ValidationError):
            sales_service.delete_sale(invoice.id, actor=admin_user, password=None)

    def test_bulk_delete_skips_missing(self, rate, product, customer, admin_user):
        a = _sale(product, customer, qty=1, paid_cents=2500)
        b = _sale(product, customer, qty=1, paid_cents=0)

        result = sales_service.bulk_delete_sales([a.id, b.id, 9999], actor=admin_user, password=PASSWORD)

        assert result["deleted_count"] == 2
        assert result["missing"] == [9999]
        db.session.expire_all()
        assert db.session.get(Product, product.id).quantity_on_hand == 10
        assert cash_service.get_cash_balance() == 0
        assert_ledger_consistent()

    def test_delete_all_zeroes_receivables(self, rate, product, customer, admin_user):
        _sale(product, customer, qty=1, paid_cents=0)
        debt_service.create_lending(
            customer_id=customer.id,
            due_date=utcnow() + timedelta(days=10),
            amount_afn_cents=50000,
        )

        result = sales_service.delete_all_sales(actor=admin_user, password=PASSWORD)

        assert result["deleted_count"] == 1
        db.session.expire_all()
        assert db.session.query(CreditEntry).count() == 0
        assert db.session.get(Customer, customer.id).outstanding_balance_afn_cents == 0
        assert db.session.get(Product, product.id).quantity_on_hand == 10
        # lent cash stays out of the till
        assert cash_service.get_cash_balance() == -50000
