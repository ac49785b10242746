# Overview: Flask API route for reading the audit trail.

from flask import Blueprint, jsonify, request

from ..decorators import require_auth, require_role
from ..models.auth import ROLE_ADMIN
from ..services import audit_service

audit_bp = Blueprint("audit", __name__, url_prefix="/api/audit-logs")


@audit_bp.get("")
@require_auth
@require_role(ROLE_ADMIN)
def list_audit_logs_route():
    rows, total = audit_service.list_audit_logs(
        entity=request.args.get("entity"),
        action=request.args.get("action"),
        user_id=request.args.get("user_id", type=int),
        limit=request.args.get("limit", 100, type=int),
        offset=request.args.get("offset", 0, type=int),
    )
    return jsonify({"items": [r.to_dict() for r in rows], "count": len(rows), "total": total}), 200
