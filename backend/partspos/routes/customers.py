# Overview: Flask API routes for customer accounts and account payments.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_role
from ..errors import LedgerError
from ..models.auth import ROLE_ACCOUNTANT, ROLE_ADMIN, ROLE_CASHIER, ROLE_MANAGER
from ..models.sales import PAYMENT_METHODS
from ..services import customers_service
from ..validation import get_choice, get_id_list, get_int, get_rate, get_str

customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.get("")
@require_auth
def list_customers_route():
    try:
        customers = customers_service.list_customers(
            status=request.args.get("status", "active"),
            search=request.args.get("search"),
        )
        return jsonify({"items": [c.to_dict() for c in customers], "count": len(customers)}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code


@customers_bp.get("/<int:customer_id>")
@require_auth
def get_customer_route(customer_id: int):
    try:
        return jsonify({"customer": customers_service.get_customer_detail(customer_id)}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code


@customers_bp.post("")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER, ROLE_CASHIER)
def create_customer_route():
    try:
        customer = customers_service.create_customer(request.get_json(silent=True) or {})
        return jsonify({"customer": customer.to_dict()}), 201
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create customer")
        return jsonify({"message": "Internal server error"}), 500


@customers_bp.put("/<int:customer_id>")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER, ROLE_CASHIER)
def update_customer_route(customer_id: int):
    try:
        customer = customers_service.update_customer(customer_id, request.get_json(silent=True) or {})
        return jsonify({"customer": customer.to_dict()}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update customer")
        return jsonify({"message": "Internal server error"}), 500


@customers_bp.put("/<int:customer_id>/toggle-status")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def toggle_customer_route(customer_id: int):
    try:
        customer = customers_service.toggle_customer_status(customer_id)
        return jsonify({"customer": customer.to_dict()}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code


@customers_bp.post("/<int:customer_id>/payment")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER, ROLE_CASHIER, ROLE_ACCOUNTANT)
def customer_payment_route(customer_id: int):
    """
    Body: amount_afn_cents, or amount_cents (+ optional exchange_rate);
    method, reference, notes optional.
    """
    try:
        data = request.get_json(silent=True) or {}
        result = customers_service.receive_customer_payment(
            customer_id,
            amount_afn_cents=get_int(data, "amount_afn_cents", required=False),
            amount_cents=get_int(data, "amount_cents", required=False),
            exchange_rate=get_rate(data),
            method=get_choice(data, "method", PAYMENT_METHODS, default="CASH"),
            reference=get_str(data, "reference", max_length=128),
            notes=get_str(data, "notes"),
            user_id=g.current_user.id,
        )
        return jsonify(result), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to record customer payment")
        return jsonify({"message": "Internal server error"}), 500


@customers_bp.delete("/<int:customer_id>")
@require_auth
@require_role(ROLE_ADMIN)
def delete_customer_route(customer_id: int):
    try:
        data = request.get_json(silent=True) or {}
        customers_service.delete_customer(customer_id, actor=g.current_user, password=data.get("password"))
        return jsonify({"message": "Customer deleted"}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete customer")
        return jsonify({"message": "Internal server error"}), 500


@customers_bp.post("/bulk-delete")
@require_auth
@require_role(ROLE_ADMIN)
def bulk_delete_customers_route():
    try:
        data = request.get_json(silent=True) or {}
        result = customers_service.bulk_delete_customers(
            get_id_list(data), actor=g.current_user, password=data.get("password"),
        )
        return jsonify(result), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to bulk delete customers")
        return jsonify({"message": "Internal server error"}), 500
