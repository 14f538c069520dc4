from __future__ import annotations
from datetime import datetime
from .time_utils import parse_iso_datetime

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Integer, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta


# Maximum price: Rp9.999.999,99 (999,999,999 cents)
# This prevents database overflow issues and nonsensical prices
MAX_PRICE_CENTS = 999_999_999

# Maximum single payment: Rp10.000.000.000.000 (10**15 cents), well inside BIGINT
MAX_PAYMENT_CENTS = 10**15

PRODUCT_UNITS = (
    "pcs", "unit", "box", "pack", "kg", "gram", "liter", "meter", "roll", "pair", "dozen",
)

PAYMENT_METHODS = ("cash", "transfer", "qris", "debit", "credit", "other")


class ValidationError(ValueError):
    """400-level input problem."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate SKU)."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    - min_lengths: minimum length for string fields (after stripping)
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore
    min_lengths: dict[str, int] | None = None


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def parse_int(value: Any, field: str) -> int:
    """
    Strict integer parsing: rejects bools, floats, decimals and scientific notation.

    Raises ValidationError naming the field.
    """
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer")
        if 'e' in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        if '.' in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    raise ValidationError(f"{field} must be an integer")


def require_positive_int(value: Any, field: str, error_cls=ValidationError) -> int:
    """
    Parse value as a strictly positive integer.

    error_cls lets ledger services raise their own taxonomy
    (InvalidQuantityError / InvalidAmountError) for the same check.
    """
    if value is None:
        raise error_cls(f"{field} is required")
    try:
        number = parse_int(value, field)
    except ValidationError as exc:
        raise error_cls(str(exc))
    if number <= 0:
        raise error_cls(f"{field} must be greater than 0")
    return number


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return parse_int(value, col.key)

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        raise ValidationError(f"{col.key} must be a boolean")

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            return dt
        raise ValidationError(f"{col.key} must be a datetime")

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

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)
    min_lengths = policy.min_lengths or {}

    # Reject unknown / non-writable fields
    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        if isinstance(col.type, (String, Text)) and isinstance(val, str):
            if not col.nullable and val == "":
                raise ValidationError(f"{k} cannot be blank")
            if col.nullable and val == "":
                val = None
            elif k in min_lengths and len(val) < min_lengths[k]:
                raise ValidationError(f"{k} must be at least {min_lengths[k]} characters")

        # Max length check for String(n)
        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def _enforce_price(patch: dict, field: str) -> None:
    if field in patch and patch[field] is not None:
        price = patch[field]
        if price <= 0:
            raise ValidationError(f"{field} must be > 0")
        if price > MAX_PRICE_CENTS:
            raise ValidationError(f"{field} cannot exceed {MAX_PRICE_CENTS}")


def enforce_rules_product(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    _enforce_price(patch, "base_price_cents")
    _enforce_price(patch, "selling_price_cents")

    if "min_stock" in patch and patch["min_stock"] is not None and patch["min_stock"] < 0:
        raise ValidationError("min_stock must be >= 0")


def enforce_rules_payment_method(method: str | None) -> str | None:
    if method is None:
        return None
    method = str(method).strip().lower()
    if not method:
        return None
    if method not in PAYMENT_METHODS:
        raise ValidationError(f"payment_method must be one of {', '.join(PAYMENT_METHODS)}")
    return method


def optional_text(value: Any, field: str, max_length: int) -> str | None:
    """Strip a free-text field; blank -> None; enforce max length."""
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    if len(text) > max_length:
        raise ValidationError(f"{field} exceeds max length {max_length}")
    return text
