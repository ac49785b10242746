# Overview: Health check endpoint.

import time

from flask import Blueprint, current_app, jsonify

from ..extensions import db
from ..models import CashBalance, User
from ..services.cash_service import verify_cash_ledger

system_bp = Blueprint("system", __name__, url_prefix="/api")


def check_database_health() -> dict:
    """Check database connectivity and that the bootstrap rows exist."""
    start_time = time.time()
    try:
        user_count = db.session.query(User).count()
        has_balance_row = db.session.get(CashBalance, 1) is not None
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy" if has_balance_row else "degraded",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "users": user_count,
                "cash_balance_initialized": has_balance_row,
            },
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


def check_cash_ledger_health() -> dict:
    try:
        result = verify_cash_ledger()
        return {"status": "healthy" if result["consistent"] else "degraded", "details": result}
    except Exception:
        current_app.logger.exception("Cash ledger health check failed")
        return {"status": "unhealthy", "error": "Cash ledger error"}


@system_bp.get("/health")
def health():
    checks = {
        "database": check_database_health(),
        "cash_ledger": check_cash_ledger_health(),
    }
    statuses = {c["status"] for c in checks.values()}
    if "unhealthy" in statuses:
        overall = "unhealthy"
    elif "degraded" in statuses:
        overall = "degraded"
    else:
        overall = "healthy"
    code = 503 if overall == "unhealthy" else 200
    return jsonify({"status": overall, "checks": checks}), code
