# Overview: Read-only reports over sales, stock, receivables, and cash.

from __future__ import annotations

from collections import OrderedDict
from datetime import datetime, timedelta

from flask import current_app
from sqlalchemy import func

from ..errors import ValidationError
from ..extensions import db
from ..models import CreditEntry, Customer, Invoice, Payment, Product
from ..models.credit import CREDIT_STATUS_SETTLED
from ..models.sales import INVOICE_STATUS_CANCELLED
from ..money import usd_to_afn_cents
from ..time_utils import days_since, start_of_day, to_utc_z, utcnow
from .cash_service import get_cash_balance

AGING_OVERDUE_DAYS = 30
AGING_BUCKETS = (("0-30", 0, 30), ("31-60", 31, 60), ("61-90", 61, 90), ("90+", 91, None))
PERIODS = {"monthly", "yearly"}


def _returned_value_cents(invoice: Invoice) -> int:
    return sum(item.returned_quantity * item.unit_price_cents for item in invoice.items)


def _net_sales_cents(invoice: Invoice) -> int:
    return invoice.total_cents - _returned_value_cents(invoice)


def _invoices_between(start: datetime | None, end: datetime | None) -> list[Invoice]:
    query = db.session.query(Invoice).filter(Invoice.status != INVOICE_STATUS_CANCELLED)
    if start:
        query = query.filter(Invoice.date >= start)
    if end:
        query = query.filter(Invoice.date < end)
    return query.order_by(Invoice.date.asc()).all()


def dashboard(now: datetime | None = None) -> dict:
    now = now or utcnow()
    today = start_of_day(now)
    invoices = _invoices_between(today, today + timedelta(days=1))
    threshold = current_app.config.get("LOW_STOCK_THRESHOLD", 3)

    low_stock = (
        db.session.query(Product)
        .filter(Product.is_active.is_(True), Product.quantity_on_hand <= threshold)
        .order_by(Product.quantity_on_hand.asc(), Product.name.asc())
        .all()
    )
    total_outstanding = (
        db.session.query(func.coalesce(func.sum(Customer.outstanding_balance_afn_cents), 0)).scalar()
    )

    return {
        "date": to_utc_z(today),
        "sales_today_afn_cents": sum(
            usd_to_afn_cents(_net_sales_cents(inv), inv.exchange_rate) for inv in invoices
        ),
        "sales_today_cents": sum(_net_sales_cents(inv) for inv in invoices),
        "invoices_today": len(invoices),
        "low_stock_threshold": threshold,
        "low_stock": [
            {"id": p.id, "sku": p.sku, "name": p.name, "quantity_on_hand": p.quantity_on_hand}
            for p in low_stock
        ],
        "total_outstanding_afn_cents": int(total_outstanding),
        "shop_balance_afn_cents": get_cash_balance(),
    }


def inventory_valuation() -> dict:
    products = db.session.query(Product).filter(Product.is_active.is_(True)).all()

    categories: dict[str, dict] = {}
    total_cost = 0
    total_retail = 0
    total_units = 0
    for p in products:
        cost = p.quantity_on_hand * p.cost_price_cents
        retail = p.quantity_on_hand * p.sale_price_cents
        total_cost += cost
        total_retail += retail
        total_units += p.quantity_on_hand
        bucket = categories.setdefault(p.category or "Uncategorized", {
            "category": p.category or "Uncategorized",
            "product_count": 0,
            "units": 0,
            "cost_value_cents": 0,
            "retail_value_cents": 0,
        })
        bucket["product_count"] += 1
        bucket["units"] += p.quantity_on_hand
        bucket["cost_value_cents"] += cost
        bucket["retail_value_cents"] += retail

    margin = total_retail - total_cost
    return {
        "product_count": len(products),
        "total_units": total_units,
        "total_cost_value_cents": total_cost,
        "total_retail_value_cents": total_retail,
        "potential_margin_cents": margin,
        "margin_percent": round(margin * 100 / total_retail, 2) if total_retail else 0,
        "categories": sorted(categories.values(), key=lambda c: c["retail_value_cents"], reverse=True),
    }


def sales_report(start: datetime | None = None, end: datetime | None = None) -> dict:
    """Payments received in [start, end]; defaults to the last 30 days."""
    end = end or utcnow()
    start = start or end - timedelta(days=30)
    if start > end:
        raise ValidationError("start must be before end", "start")

    payments = (
        db.session.query(Payment)
        .filter(Payment.created_at >= start, Payment.created_at <= end)
        .order_by(Payment.created_at.asc(), Payment.id.asc())
        .all()
    )
    by_method: dict[str, int] = {}
    for p in payments:
        by_method[p.method] = by_method.get(p.method, 0) + p.amount_afn_cents

    return {
        "start": to_utc_z(start),
        "end": to_utc_z(end),
        "payment_count": len(payments),
        "total_afn_cents": sum(p.amount_afn_cents for p in payments),
        "total_cents": sum(p.amount_cents for p in payments),
        "by_method_afn_cents": by_method,
        "payments": [p.to_dict() for p in payments],
    }


def aging_report(now: datetime | None = None) -> dict:
    """Open receivables, oldest first, with days open and 30-day overdue flag."""
    now = now or utcnow()
    entries = (
        db.session.query(CreditEntry)
        .filter(CreditEntry.status != CREDIT_STATUS_SETTLED, CreditEntry.remaining_afn_cents > 0)
        .order_by(CreditEntry.opened_at.asc(), CreditEntry.id.asc())
        .all()
    )

    buckets = OrderedDict((label, 0) for label, _, _ in AGING_BUCKETS)
    rows = []
    for entry in entries:
        days_open = days_since(entry.opened_at, now)
        for label, low, high in AGING_BUCKETS:
            if days_open >= low and (high is None or days_open <= high):
                buckets[label] += entry.remaining_afn_cents
                break
        row = entry.to_dict()
        row["days_open"] = days_open
        row["is_overdue"] = days_open > AGING_OVERDUE_DAYS
        rows.append(row)

    return {
        "as_of": to_utc_z(now),
        "total_afn_cents": sum(e.remaining_afn_cents for e in entries),
        "buckets_afn_cents": dict(buckets),
        "entries": rows,
    }


def period_report(period: str = "monthly", year: int | None = None) -> dict:
    """
    Sales net of returns, COGS at current product cost, and gross profit grouped
    by month (optionally within one year) or by year.
    """
    if period not in PERIODS:
        raise ValidationError("period must be monthly or yearly", "period")

    start = end = None
    if year is not None:
        start = datetime(year, 1, 1)
        end = datetime(year + 1, 1, 1)

    groups: "OrderedDict[str, dict]" = OrderedDict()
    for invoice in _invoices_between(start, end):
        key = invoice.date.strftime("%Y-%m" if period == "monthly" else "%Y")
        row = groups.setdefault(key, {
            "period": key,
            "invoice_count": 0,
            "total_sales_cents": 0,
            "cogs_cents": 0,
            "gross_profit_cents": 0,
        })
        sales = _net_sales_cents(invoice)
        cogs = sum(
            (item.quantity - item.returned_quantity) * (item.product.cost_price_cents if item.product else 0)
            for item in invoice.items
        )
        row["invoice_count"] += 1
        row["total_sales_cents"] += sales
        row["cogs_cents"] += cogs
        row["gross_profit_cents"] += sales - cogs

    rows = list(groups.values())
    return {
        "period": period,
        "year": year,
        "rows": rows,
        "totals": {
            "invoice_count": sum(r["invoice_count"] for r in rows),
            "total_sales_cents": sum(r["total_sales_cents"] for r in rows),
            "cogs_cents": sum(r["cogs_cents"] for r in rows),
            "gross_profit_cents": sum(r["gross_profit_cents"] for r in rows),
        },
    }
