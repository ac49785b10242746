# Overview: Best-effort audit trail written after a ledger commit.

from __future__ import annotations

import json

from flask import current_app

from ..extensions import db
from ..models import AuditLog


def log_action(
    *,
    user_id: int | None,
    action: str,
    entity: str,
    entity_id: int | None = None,
    details: dict | None = None,
) -> None:
    """
    Record an audit row in its own commit.

    Never raises: the business operation has already committed and must not
    be reported as failed because the audit sink is unavailable.
    """
    try:
        db.session.add(AuditLog(
            user_id=user_id,
            action=action,
            entity=entity,
            entity_id=entity_id,
            details=json.dumps(details, default=str) if details else None,
        ))
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.warning("Failed to write audit log %s %s:%s", action, entity, entity_id, exc_info=True)


def list_audit_logs(
    *,
    entity: str | None = None,
    action: str | None = None,
    user_id: int | None = None,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[AuditLog], int]:
    query = db.session.query(AuditLog)
    if entity:
        query = query.filter(AuditLog.entity == entity)
    if action:
        query = query.filter(AuditLog.action == action)
    if user_id:
        query = query.filter(AuditLog.user_id == user_id)

    total = query.count()
    limit = max(1, min(limit, 500))
    offset = max(0, offset)
    rows = query.order_by(AuditLog.id.desc()).offset(offset).limit(limit).all()
    return rows, total
