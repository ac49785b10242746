# Overview: Flask API routes for customer deposits held by the shop.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_role
from ..errors import LedgerError
from ..models.auth import ROLE_ACCOUNTANT, ROLE_ADMIN, ROLE_CASHIER, ROLE_MANAGER
from ..services import deposit_service
from ..validation import get_int, get_str

deposits_bp = Blueprint("deposits", __name__, url_prefix="/api/deposits")

MONEY_ROLES = (ROLE_ADMIN, ROLE_MANAGER, ROLE_CASHIER, ROLE_ACCOUNTANT)


@deposits_bp.get("")
@require_auth
def list_deposits_route():
    deposits = deposit_service.list_deposits(
        customer_id=request.args.get("customer_id", type=int),
        status=request.args.get("status"),
    )
    return jsonify({"items": [d.to_dict() for d in deposits], "count": len(deposits)}), 200


@deposits_bp.get("/summary")
@require_auth
def deposit_summary_route():
    return jsonify(deposit_service.get_deposit_summary()), 200


@deposits_bp.get("/<int:deposit_id>")
@require_auth
def get_deposit_route(deposit_id: int):
    try:
        deposit = deposit_service.get_deposit(deposit_id)
        return jsonify({"deposit": deposit.to_dict(include_withdrawals=True)}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code


@deposits_bp.post("")
@require_auth
@require_role(*MONEY_ROLES)
def create_deposit_route():
    try:
        data = request.get_json(silent=True) or {}
        deposit = deposit_service.create_deposit(
            customer_id=get_int(data, "customer_id"),
            amount_afn_cents=get_int(data, "amount_afn_cents", min_value=1),
            notes=get_str(data, "notes"),
            user_id=g.current_user.id,
        )
        return jsonify({"deposit": deposit.to_dict()}), 201
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create deposit")
        return jsonify({"message": "Internal server error"}), 500


@deposits_bp.post("/<int:deposit_id>/withdraw")
@require_auth
@require_role(*MONEY_ROLES)
def withdraw_deposit_route(deposit_id: int):
    try:
        data = request.get_json(silent=True) or {}
        withdrawal = deposit_service.withdraw_deposit(
            deposit_id,
            amount_afn_cents=get_int(data, "amount_afn_cents", min_value=1),
            notes=get_str(data, "notes"),
            user_id=g.current_user.id,
        )
        deposit = deposit_service.get_deposit(deposit_id)
        return jsonify({"withdrawal": withdrawal.to_dict(), "deposit": deposit.to_dict()}), 201
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to withdraw deposit")
        return jsonify({"message": "Internal server error"}), 500
