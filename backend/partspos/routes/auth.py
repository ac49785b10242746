# Overview: Flask API routes for login, logout, and staff user management.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_role
from ..errors import LedgerError
from ..models.auth import ROLE_ADMIN
from ..services import auth_service, session_service
from ..validation import get_str

auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")
users_bp = Blueprint("users", __name__, url_prefix="/api/users")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate by username or email and issue a bearer token.

    Token must be included in the Authorization header for protected routes.
    """
    try:
        data = request.get_json(silent=True) or {}
        identifier = data.get("username") or data.get("email")
        user = auth_service.authenticate(identifier, data.get("password"))
        _, token = session_service.create_session(
            user.id,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )
        return jsonify({"user": user.to_dict(), "token": token}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to log in")
        return jsonify({"message": "Internal server error"}), 500


@auth_bp.post("/logout")
@require_auth
def logout_route():
    session_service.revoke_session(g.session_token)
    return jsonify({"message": "Logged out"}), 200


@auth_bp.get("/me")
@require_auth
def me_route():
    return jsonify({"user": g.current_user.to_dict()}), 200


@users_bp.get("")
@require_auth
@require_role(ROLE_ADMIN)
def list_users_route():
    users = auth_service.list_users()
    return jsonify({"items": [u.to_dict() for u in users], "count": len(users)}), 200


@users_bp.post("")
@require_auth
@require_role(ROLE_ADMIN)
def create_user_route():
    try:
        data = request.get_json(silent=True) or {}
        user = auth_service.create_user(
            username=get_str(data, "username", required=True, max_length=64),
            email=get_str(data, "email", required=True, max_length=255),
            password=data.get("password") or "",
            role=get_str(data, "role", required=True),
            name=get_str(data, "name", max_length=255),
        )
        return jsonify({"user": user.to_dict()}), 201
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create user")
        return jsonify({"message": "Internal server error"}), 500


@users_bp.patch("/<int:user_id>")
@require_auth
@require_role(ROLE_ADMIN)
def update_user_route(user_id: int):
    try:
        data = request.get_json(silent=True) or {}
        is_active = data.get("is_active")
        user = auth_service.update_user(
            user_id,
            role=get_str(data, "role"),
            is_active=is_active if isinstance(is_active, bool) else None,
            name=get_str(data, "name", max_length=255),
            password=data.get("password"),
        )
        if is_active is False:
            session_service.revoke_all_user_sessions(user.id, reason="User deactivated")
        return jsonify({"user": user.to_dict()}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update user")
        return jsonify({"message": "Internal server error"}), 500
