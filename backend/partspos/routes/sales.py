# Overview: Flask API routes for sales, returns, and sale reversal.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_role
from ..errors import LedgerError
from ..models.auth import ROLE_ADMIN, ROLE_CASHIER, ROLE_MANAGER
from ..models.sales import PAYMENT_METHODS
from ..services import return_service, sales_service
from ..time_utils import parse_iso_datetime
from ..validation import get_choice, get_datetime, get_id_list, get_int, get_rate, get_str

sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER, ROLE_CASHIER)
def create_sale_route():
    """
    Create a sale.

    Body: customer_id (omit for walk-in), items [{product_id, quantity,
    unit_price_cents?, discount_cents?}], tax_cents, discount_cents, paid_cents,
    payment_method, payment_reference, exchange_rate, due_date, notes.
    """
    try:
        data = request.get_json(silent=True) or {}
        invoice = sales_service.create_sale(
            items=data.get("items"),
            customer_id=get_int(data, "customer_id", required=False),
            tax_cents=get_int(data, "tax_cents", required=False, default=0),
            discount_cents=get_int(data, "discount_cents", required=False, default=0),
            paid_cents=get_int(data, "paid_cents", required=False, default=0),
            payment_method=get_choice(data, "payment_method", PAYMENT_METHODS, default="CASH"),
            payment_reference=get_str(data, "payment_reference", max_length=128),
            exchange_rate=get_rate(data),
            due_date=get_datetime(data, "due_date"),
            notes=get_str(data, "notes"),
            user_id=g.current_user.id,
        )
        return jsonify({"invoice": invoice.to_dict(include_items=True)}), 201
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return jsonify({"message": "Internal server error"}), 500


@sales_bp.get("")
@require_auth
def list_sales_route():
    try:
        invoices, total = sales_service.list_invoices(
            customer_id=request.args.get("customer_id", type=int),
            status=request.args.get("status"),
            from_date=parse_iso_datetime(request.args.get("from")),
            to_date=parse_iso_datetime(request.args.get("to")),
            limit=request.args.get("limit", 100, type=int),
            offset=request.args.get("offset", 0, type=int),
        )
        return jsonify({"items": [i.to_dict() for i in invoices], "count": len(invoices), "total": total}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except ValueError:
        return jsonify({"message": "from/to must be ISO-8601 dates"}), 400


@sales_bp.get("/<int:invoice_id>")
@require_auth
def get_sale_route(invoice_id: int):
    try:
        invoice = sales_service.get_invoice(invoice_id)
        return jsonify({"invoice": invoice.to_dict(include_items=True)}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code


@sales_bp.post("/<int:invoice_id>/return")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER, ROLE_CASHIER)
def return_items_route(invoice_id: int):
    """Body: items [{item_id, quantity}], password (admin key)."""
    try:
        data = request.get_json(silent=True) or {}
        result = return_service.return_items(
            invoice_id, data.get("items"), actor=g.current_user, password=data.get("password"),
        )
        return jsonify(result), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to process return")
        return jsonify({"message": "Internal server error"}), 500


@sales_bp.delete("/<int:invoice_id>")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def delete_sale_route(invoice_id: int):
    try:
        data = request.get_json(silent=True) or {}
        result = sales_service.delete_sale(invoice_id, actor=g.current_user, password=data.get("password"))
        return jsonify(result), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete sale")
        return jsonify({"message": "Internal server error"}), 500


@sales_bp.post("/bulk-delete")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def bulk_delete_sales_route():
    try:
        data = request.get_json(silent=True) or {}
        result = sales_service.bulk_delete_sales(
            get_id_list(data), actor=g.current_user, password=data.get("password"),
        )
        return jsonify(result), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to bulk delete sales")
        return jsonify({"message": "Internal server error"}), 500


@sales_bp.post("/delete-all")
@require_auth
@require_role(ROLE_ADMIN)
def delete_all_sales_route():
    try:
        data = request.get_json(silent=True) or {}
        result = sales_service.delete_all_sales(actor=g.current_user, password=data.get("password"))
        return jsonify(result), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete all sales")
        return jsonify({"message": "Internal server error"}), 500
