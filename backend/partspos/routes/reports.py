# Overview: Flask API routes for dashboard and financial reports.

from flask import Blueprint, jsonify, request

from ..decorators import require_auth, require_role
from ..errors import LedgerError
from ..models.auth import ROLE_ACCOUNTANT, ROLE_ADMIN, ROLE_MANAGER
from ..services import reporting_service
from ..time_utils import parse_iso_datetime

reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")

REPORT_ROLES = (ROLE_ADMIN, ROLE_MANAGER, ROLE_ACCOUNTANT)


@reports_bp.get("/dashboard")
@require_auth
def dashboard_route():
    return jsonify(reporting_service.dashboard()), 200


@reports_bp.get("/inventory-valuation")
@require_auth
@require_role(*REPORT_ROLES)
def inventory_valuation_route():
    return jsonify(reporting_service.inventory_valuation()), 200


@reports_bp.get("/sales")
@require_auth
@require_role(*REPORT_ROLES)
def sales_report_route():
    """Query: from, to (ISO-8601, optional)."""
    try:
        start = parse_iso_datetime(request.args.get("from"))
        end = parse_iso_datetime(request.args.get("to"))
    except ValueError:
        return jsonify({"message": "from/to must be ISO-8601 dates"}), 400
    try:
        return jsonify(reporting_service.sales_report(start, end)), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code


@reports_bp.get("/aging")
@require_auth
@require_role(*REPORT_ROLES)
def aging_report_route():
    return jsonify(reporting_service.aging_report()), 200


@reports_bp.get("/period")
@require_auth
@require_role(*REPORT_ROLES)
def period_report_route():
    period = request.args.get("period", "monthly")
    if period not in ("monthly", "yearly"):
        return jsonify({"message": "period must be monthly or yearly"}), 400
    return jsonify(reporting_service.period_report(period, request.args.get("year", type=int))), 200
