# Overview: Flask API routes for customer debts, lending, and debt payments.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_role
from ..errors import LedgerError
from ..models.auth import ROLE_ACCOUNTANT, ROLE_ADMIN, ROLE_CASHIER, ROLE_MANAGER
from ..models.sales import PAYMENT_METHODS
from ..services import debt_service
from ..validation import get_choice, get_datetime, get_int, get_rate, get_str

debts_bp = Blueprint("debts", __name__, url_prefix="/api/debts")

MONEY_ROLES = (ROLE_ADMIN, ROLE_MANAGER, ROLE_CASHIER, ROLE_ACCOUNTANT)


@debts_bp.get("")
@require_auth
def list_debts_route():
    entries = debt_service.list_debts(
        customer_id=request.args.get("customer_id", type=int),
        status=request.args.get("status"),
        kind=request.args.get("kind"),
    )
    return jsonify({"items": [e.to_dict() for e in entries], "count": len(entries)}), 200


@debts_bp.get("/debtors")
@require_auth
def list_debtors_route():
    debtors = debt_service.list_debtors()
    return jsonify({"items": debtors, "count": len(debtors)}), 200


@debts_bp.get("/summary")
@require_auth
def debt_summary_route():
    return jsonify(debt_service.get_debt_summary()), 200


@debts_bp.get("/<int:debt_id>")
@require_auth
def get_debt_route(debt_id: int):
    try:
        entry = debt_service.get_debt(debt_id)
        return jsonify({"debt": entry.to_dict(include_payments=True)}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code


@debts_bp.post("/<int:debt_id>/payments")
@require_auth
@require_role(*MONEY_ROLES)
def record_debt_payment_route(debt_id: int):
    try:
        data = request.get_json(silent=True) or {}
        payment = debt_service.record_debt_payment(
            debt_id,
            amount_afn_cents=get_int(data, "amount_afn_cents", required=False),
            amount_cents=get_int(data, "amount_cents", required=False),
            method=get_choice(data, "method", PAYMENT_METHODS, default="CASH"),
            reference=get_str(data, "reference", max_length=128),
            notes=get_str(data, "notes"),
            user_id=g.current_user.id,
        )
        entry = debt_service.get_debt(debt_id)
        return jsonify({"payment": payment.to_dict(), "debt": entry.to_dict()}), 201
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to record debt payment")
        return jsonify({"message": "Internal server error"}), 500


@debts_bp.patch("/<int:debt_id>")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER, ROLE_ACCOUNTANT)
def update_debt_route(debt_id: int):
    try:
        data = request.get_json(silent=True) or {}
        entry = debt_service.update_debt(
            debt_id,
            notes=get_str(data, "notes"),
            due_date=get_datetime(data, "due_date"),
            user_id=g.current_user.id,
        )
        return jsonify({"debt": entry.to_dict()}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update debt")
        return jsonify({"message": "Internal server error"}), 500


@debts_bp.post("/batch-update-status")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER, ROLE_ACCOUNTANT)
def refresh_statuses_route():
    try:
        changed = debt_service.refresh_debt_statuses()
        return jsonify({"updated": changed}), 200
    except Exception:
        current_app.logger.exception("Failed to refresh debt statuses")
        return jsonify({"message": "Internal server error"}), 500


@debts_bp.post("/lend")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def create_lending_route():
    """
    Lend cash to a customer.

    Body: customer_id, due_date, amount_afn_cents or amount_cents (+ optional
    exchange_rate), notes.
    """
    try:
        data = request.get_json(silent=True) or {}
        entry = debt_service.create_lending(
            customer_id=get_int(data, "customer_id"),
            due_date=get_datetime(data, "due_date", required=True),
            amount_afn_cents=get_int(data, "amount_afn_cents", required=False),
            amount_cents=get_int(data, "amount_cents", required=False),
            exchange_rate=get_rate(data),
            notes=get_str(data, "notes"),
            user_id=g.current_user.id,
        )
        return jsonify({"debt": entry.to_dict()}), 201
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create lending")
        return jsonify({"message": "Internal server error"}), 500


@debts_bp.delete("/<int:debt_id>")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def delete_debt_route(debt_id: int):
    try:
        data = request.get_json(silent=True) or {}
        result = debt_service.delete_debt(debt_id, actor=g.current_user, password=data.get("password"))
        return jsonify(result), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete debt")
        return jsonify({"message": "Internal server error"}), 500
