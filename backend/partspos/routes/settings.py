# Overview: Flask API routes for the exchange rate and the shop cash balance.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_role
from ..errors import LedgerError
from ..models.auth import ROLE_ACCOUNTANT, ROLE_ADMIN, ROLE_MANAGER
from ..money import format_rate
from ..services import audit_service, auth_service, cash_service, settings_service
from ..validation import get_int, get_rate, get_str

settings_bp = Blueprint("settings", __name__, url_prefix="/api/settings")


@settings_bp.get("/exchange-rate")
@require_auth
def get_exchange_rate_route():
    return jsonify({"exchange_rate": format_rate(settings_service.get_exchange_rate())}), 200


@settings_bp.post("/exchange-rate")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def set_exchange_rate_route():
    try:
        data = request.get_json(silent=True) or {}
        setting = settings_service.set_exchange_rate(
            get_rate(data, required=True), user_id=g.current_user.id,
        )
        return jsonify({"exchange_rate": setting.value}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to set exchange rate")
        return jsonify({"message": "Internal server error"}), 500


@settings_bp.get("/shop-balance")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER, ROLE_ACCOUNTANT)
def get_shop_balance_route():
    return jsonify({"balance_afn_cents": cash_service.get_cash_balance()}), 200


@settings_bp.post("/shop-balance")
@require_auth
@require_role(ROLE_ADMIN)
def set_shop_balance_route():
    """Overwrite the shop balance after re-authentication; the delta is journaled."""
    try:
        data = request.get_json(silent=True) or {}
        auth_service.verify_actor_password(g.current_user, data.get("password"))
        new_balance = get_int(data, "balance_afn_cents", min_value=0)
        entry = cash_service.set_cash_balance(
            new_balance_afn_cents=new_balance,
            actor_user_id=g.current_user.id,
            description=get_str(data, "description", max_length=255),
        )
        if entry is not None:
            audit_service.log_action(
                user_id=g.current_user.id,
                action="SET_SHOP_BALANCE",
                entity="cash_balance",
                entity_id=1,
                details={"delta_afn_cents": entry.amount_afn_cents, "balance_afn_cents": new_balance},
            )
        return jsonify({
            "balance_afn_cents": cash_service.get_cash_balance(),
            "entry": entry.to_dict() if entry is not None else None,
        }), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to set shop balance")
        return jsonify({"message": "Internal server error"}), 500


@settings_bp.get("/balance-history")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER, ROLE_ACCOUNTANT)
def balance_history_route():
    entries = cash_service.list_cash_history(limit=request.args.get("limit", 100, type=int))
    return jsonify({"items": [e.to_dict() for e in entries], "count": len(entries)}), 200
