# Overview: Flask API routes for shop expenses.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_role
from ..errors import LedgerError
from ..models.auth import ROLE_ACCOUNTANT, ROLE_ADMIN, ROLE_MANAGER
from ..services import expense_service
from ..time_utils import parse_iso_datetime
from ..validation import get_datetime, get_int, get_str

expenses_bp = Blueprint("expenses", __name__, url_prefix="/api/expenses")


@expenses_bp.get("")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER, ROLE_ACCOUNTANT)
def list_expenses_route():
    try:
        expenses = expense_service.list_expenses(
            from_date=parse_iso_datetime(request.args.get("from")),
            to_date=parse_iso_datetime(request.args.get("to")),
        )
    except ValueError:
        return jsonify({"message": "from/to must be ISO-8601 dates"}), 400
    return jsonify({
        "items": [e.to_dict() for e in expenses],
        "count": len(expenses),
        "total_afn_cents": sum(e.amount_afn_cents for e in expenses),
    }), 200


@expenses_bp.post("")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER, ROLE_ACCOUNTANT)
def create_expense_route():
    try:
        data = request.get_json(silent=True) or {}
        expense = expense_service.create_expense(
            description=get_str(data, "description", required=True, max_length=255),
            amount_afn_cents=get_int(data, "amount_afn_cents", min_value=1),
            category=get_str(data, "category", max_length=64),
            date=get_datetime(data, "date"),
            user_id=g.current_user.id,
        )
        return jsonify({"expense": expense.to_dict()}), 201
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create expense")
        return jsonify({"message": "Internal server error"}), 500


@expenses_bp.delete("/<int:expense_id>")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def delete_expense_route(expense_id: int):
    try:
        data = request.get_json(silent=True) or {}
        expense_service.delete_expense(expense_id, actor=g.current_user, password=data.get("password"))
        return jsonify({"message": "Expense deleted"}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete expense")
        return jsonify({"message": "Internal server error"}), 500
