from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from sqlalchemy import Boolean, DateTime, Integer, String, Text
from sqlalchemy.orm import DeclarativeMeta

from debtbook.errors import ValidationFailure
from debtbook.time_utils import parse_iso_datetime


# Largest single amount accepted over the API, in minor units
MAX_AMOUNT_MINOR = 999_999_999_99


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: model columns clients are allowed to set
    - required_on_create: fields required for POST
    - extra_fields: non-column inputs the service takes (coerced as integers)
    """
    writable_fields: set[str]
    required_on_create: set[str] = field(default_factory=set)
    extra_fields: set[str] = field(default_factory=set)


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def coerce_integer(key: str, value: Any) -> int:
    """Strict integer parsing: rejects floats, booleans and scientific notation."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationFailure(f"{key} must be an integer")
        if "e" in stripped.lower():
            raise ValidationFailure(f"{key} must be a plain integer (scientific notation not allowed)")
        if "." in stripped:
            raise ValidationFailure(f"{key} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationFailure(f"{key} must be an integer")
    if isinstance(value, float):
        raise ValidationFailure(f"{key} must be an integer, not a decimal")
    raise ValidationFailure(f"{key} must be an integer")


def coerce_boolean(key: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in {"1", "true", "yes", "on", "0", "false", "no", "off"}:
        return value.strip().lower() in {"1", "true", "yes", "on"}
    if isinstance(value, int):
        return bool(value)
    raise ValidationFailure(f"{key} must be a boolean")


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Boolean):
        return coerce_boolean(col.key, value)

    if isinstance(coltype, Integer):
        return coerce_integer(col.key, value)

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationFailure(f"{col.key} must be an ISO-8601 datetime")
            if dt is None:
                raise ValidationFailure(f"{col.key} must be an ISO-8601 datetime")
            return dt
        raise ValidationFailure(f"{col.key} must be a datetime")

    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    # Numeric and others are left to the service
    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool = False,
) -> dict:
    """
    Validates + normalizes incoming JSON against SQLAlchemy column metadata
    (nullable, type, String length) and the policy allowlist.
    Returns a cleaned dict with only writable or extra fields.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationFailure("Invalid JSON payload")

    if not partial:
        missing = sorted(f for f in policy.required_on_create if payload.get(f) is None)
        if missing:
            raise ValidationFailure(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    for k in payload.keys():
        if k in policy.extra_fields:
            continue
        if k not in policy.writable_fields:
            raise ValidationFailure(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationFailure(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        if k in policy.extra_fields:
            patch[k] = None if raw is None else coerce_integer(k, raw)
            continue

        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationFailure(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationFailure(f"{k} cannot be blank")

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationFailure(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def enforce_rules_transaction(patch: dict) -> None:
    """Amount range checks not captured by column metadata."""
    for key in ("total_amount", "cash_amount"):
        value = patch.get(key)
        if value is None:
            continue
        if value < 0:
            raise ValidationFailure(f"{key} must be >= 0")
        if value > MAX_AMOUNT_MINOR:
            raise ValidationFailure(f"{key} cannot exceed {MAX_AMOUNT_MINOR}")
