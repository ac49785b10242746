from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import Boolean, Integer, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta

from .errors import ValidationError
from .money import to_rate
from .time_utils import parse_iso_datetime


# Maximum amount: 9,999,999.99 in either currency
MAX_AMOUNT_CENTS = 999_999_999


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def coerce_int(field: str, value: Any) -> int:
    """Strict integer coercion: rejects bools, floats, decimals and scientific notation."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer", field)
        if "e" in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)", field)
        if "." in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)", field)
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer", field)
    if isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal", field)
    raise ValidationError(f"{field} must be an integer", field)


def coerce_datetime(field: str, value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            dt = parse_iso_datetime(value)
        except ValueError:
            raise ValidationError(f"{field} must be an ISO-8601 datetime", field)
        if dt is None:
            raise ValidationError(f"{field} must be an ISO-8601 datetime", field)
        return dt
    raise ValidationError(f"{field} must be a datetime", field)


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None
    if isinstance(coltype, Integer):
        return coerce_int(col.key, value)
    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        raise ValidationError(f"{col.key} must be a boolean", col.key)
    if isinstance(coltype, DateTime):
        return coerce_datetime(col.key, value)
    if isinstance(coltype, (String, Text)):
        return str(value).strip()
    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.

    All field problems are collected and raised together.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    errors: list[dict] = []
    required = policy.required_on_create or set()
    if not partial:
        for f in sorted(required):
            if f not in payload or payload[f] in (None, ""):
                errors.append({"field": f, "message": f"{f} is required"})

    cols = _columns_by_key(model)
    patch: dict = {}

    for k, raw in payload.items():
        if k not in policy.writable_fields or k not in cols:
            errors.append({"field": k, "message": f"Field not allowed: {k}"})
            continue
        col = cols[k]

        if raw is None:
            if not col.nullable:
                errors.append({"field": k, "message": f"{k} cannot be null"})
                continue
            patch[k] = None
            continue

        try:
            val = _coerce_value(col, raw)
        except ValidationError as e:
            errors.append({"field": k, "message": e.message})
            continue

        if isinstance(col.type, (String, Text)) and not col.nullable and val == "":
            errors.append({"field": k, "message": f"{k} cannot be blank"})
            continue
        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                errors.append({"field": k, "message": f"{k} exceeds max length {col.type.length}"})
                continue

        patch[k] = val

    if errors:
        raise ValidationError(errors[0]["message"], errors[0]["field"], errors)
    return patch


def enforce_non_negative(patch: dict, *fields: str) -> None:
    for f in fields:
        value = patch.get(f)
        if value is None:
            continue
        if value < 0:
            raise ValidationError(f"{f} must be >= 0", f)
        if value > MAX_AMOUNT_CENTS:
            raise ValidationError(f"{f} cannot exceed {MAX_AMOUNT_CENTS}", f)


# =============================================================================
# Operation payload helpers
# =============================================================================

def get_int(payload: dict, field: str, *, required: bool = True, default: int | None = None,
            min_value: int | None = None) -> int | None:
    value = payload.get(field)
    if value is None or value == "":
        if required:
            raise ValidationError(f"{field} is required", field)
        return default
    number = coerce_int(field, value)
    if min_value is not None and number < min_value:
        raise ValidationError(f"{field} must be >= {min_value}", field)
    if number > MAX_AMOUNT_CENTS:
        raise ValidationError(f"{field} cannot exceed {MAX_AMOUNT_CENTS}", field)
    return number


def get_str(payload: dict, field: str, *, required: bool = False, max_length: int | None = None) -> str | None:
    value = payload.get(field)
    if value is None:
        if required:
            raise ValidationError(f"{field} is required", field)
        return None
    text = str(value).strip()
    if required and not text:
        raise ValidationError(f"{field} is required", field)
    if max_length and len(text) > max_length:
        raise ValidationError(f"{field} exceeds max length {max_length}", field)
    return text or None


def get_datetime(payload: dict, field: str, *, required: bool = False) -> datetime | None:
    value = payload.get(field)
    if value is None or value == "":
        if required:
            raise ValidationError(f"{field} is required", field)
        return None
    return coerce_datetime(field, value)


def get_rate(payload: dict, field: str = "exchange_rate", *, required: bool = False) -> Decimal | None:
    value = payload.get(field)
    if value is None or value == "":
        if required:
            raise ValidationError(f"{field} is required", field)
        return None
    try:
        return to_rate(value)
    except ValueError as e:
        raise ValidationError(str(e), field)


def get_choice(payload: dict, field: str, choices, *, default: str | None = None) -> str | None:
    value = payload.get(field)
    if value is None or value == "":
        return default
    normalized = str(value).strip().upper()
    if normalized not in choices:
        raise ValidationError(f"{field} must be one of: {', '.join(sorted(choices))}", field)
    return normalized


def get_id_list(payload: dict, field: str = "ids") -> list[int]:
    value = payload.get(field)
    if not isinstance(value, list) or not value:
        raise ValidationError(f"{field} must be a non-empty list", field)
    return [coerce_int(field, v) for v in value]
