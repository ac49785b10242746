"""Dashboard and financial reports."""

from datetime import timedelta

import pytest

from partspos.errors import ValidationError
from partspos.extensions import db
from partspos.models import InvoiceItem
from partspos.services import reporting_service, return_service, sales_service
from partspos.time_utils import utcnow

from conftest import PASSWORD


def _sell(product, qty, paid_cents, customer=None):
    return sales_service.create_sale(
        items=[{"product_id": product.id, "quantity": qty}],
        customer_id=customer.id if customer else None,
        paid_cents=paid_cents,
    )


class TestDashboard:
    def test_today_totals_and_low_stock(self, rate, product, second_product):
        _sell(product, 8, 20000)

        data = reporting_service.dashboard()

        assert data["invoices_today"] == 1
        assert data["sales_today_cents"] == 20000
        assert data["sales_today_afn_cents"] == 1400000
        assert [p["sku"] for p in data["low_stock"]] == ["BRK-001"]
        assert data["shop_balance_afn_cents"] == 1400000
        assert data["total_outstanding_afn_cents"] == 0

    def test_outstanding_included(self, rate, product, customer):
        _sell(product, 1, 0, customer=customer)
        assert reporting_service.dashboard()["total_outstanding_afn_cents"] == 175000


class TestInventoryValuation:
    def test_values_by_category(self, product, second_product):
        data = reporting_service.inventory_valuation()

        assert data["product_count"] == 2
        assert data["total_units"] == 15
        assert data["total_cost_value_cents"] == 16500
        assert data["total_retail_value_cents"] == 28000
        assert data["potential_margin_cents"] == 11500
        assert data["margin_percent"] == 41.07
        assert [c["category"] for c in data["categories"]] == ["Brakes", "Filters"]

    def test_archived_products_excluded(self, product):
        product.is_active = False
        db.session.commit()
        assert reporting_service.inventory_valuation()["product_count"] == 0


class TestSalesReport:
    def test_payments_grouped_by_method(self, rate, product, customer):
        _sell(product, 2, 5000)

        data = reporting_service.sales_report()

        assert data["payment_count"] == 1
        assert data["total_cents"] == 5000
        assert data["total_afn_cents"] == 350000
        assert data["by_method_afn_cents"] == {"CASH": 350000}

    def test_inverted_range_rejected(self, db_session):
        now = utcnow()
        with pytest.raises(ValidationError):
            reporting_service.sales_report(now, now - timedelta(days=1))


class TestAgingReport:
    def test_buckets_by_days_open(self, rate, product, customer):
        _sell(product, 1, 0, customer=customer)

        fresh = reporting_service.aging_report()
        assert fresh["buckets_afn_cents"]["0-30"] == 175000
        assert fresh["entries"][0]["is_overdue"] is False

        later = reporting_service.aging_report(now=utcnow() + timedelta(days=45))
        assert later["buckets_afn_cents"]["31-60"] == 175000
        assert later["entries"][0]["days_open"] >= 44
        assert later["entries"][0]["is_overdue"] is True
        assert later["total_afn_cents"] == 175000


class TestPeriodReport:
    def test_net_of_returns(self, rate, product, admin_user):
        invoice = _sell(product, 2, 5000)
        item = db.session.query(InvoiceItem).filter_by(invoice_id=invoice.id).one()
        return_service.return_items(
            invoice.id, [{"item_id": item.id, "quantity": 1}], actor=admin_user, password=PASSWORD,
        )

        year = invoice.date.year
        data = reporting_service.period_report("yearly", year)

        assert data["rows"] == [{
            "period": str(year),
            "invoice_count": 1,
            "total_sales_cents": 2500,
            "cogs_cents": 1500,
            "gross_profit_cents": 1000,
        }]
        monthly = reporting_service.period_report("monthly")
        assert monthly["rows"][0]["period"] == invoice.date.strftime("%Y-%m")

    def test_unknown_period(self, db_session):
        with pytest.raises(ValidationError):
            reporting_service.period_report("weekly")


class TestReportApi:
    def test_cashier_sees_dashboard_only(self, client, cashier_headers):
        assert client.get('/api/reports/dashboard', headers=cashier_headers).status_code == 200
        assert client.get('/api/reports/aging', headers=cashier_headers).status_code == 403

    def test_period_validation(self, client, manager_headers):
        response = client.get('/api/reports/period?period=weekly', headers=manager_headers)
        assert response.status_code == 400
        response = client.get('/api/reports/period?period=yearly', headers=manager_headers)
        assert response.status_code == 200

    def test_bad_dates(self, client, manager_headers):
        response = client.get('/api/reports/sales?from=yesterday', headers=manager_headers)
        assert response.status_code == 400
