from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Integer, String, Text

from .errors import InvalidArgumentError
from .time_utils import parse_iso_date


# Maximum unit price: 9,999,999.99 (999,999,999 cents)
MAX_PRICE_CENTS = 999_999_999

# Maximum quantity held in, or moved into, a single cell
MAX_QUANTITY = 999_999_999


class ValidationError(InvalidArgumentError):
    """400-level input problem."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


def _columns_by_key(model) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_int(key: str, value: Any) -> int:
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    # String input - must be plain digits (with optional leading minus)
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{key} must be an integer", {"field": key})
        if 'e' in stripped.lower():
            raise ValidationError(f"{key} must be a plain integer (scientific notation not allowed)", {"field": key})
        if '.' in stripped:
            raise ValidationError(f"{key} must be an integer (no decimals)", {"field": key})
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{key} must be an integer", {"field": key})
    if isinstance(value, float):
        raise ValidationError(f"{key} must be an integer, not a decimal", {"field": key})
    raise ValidationError(f"{key} must be an integer", {"field": key})


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return _coerce_int(col.key, value)

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        raise ValidationError(f"{col.key} must be true or false", {"field": col.key})

    # Strings / Text
    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    return value


def validate_payload(
    *,
    model,
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
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}", {"missing": missing})

    cols = _columns_by_key(model)

    # Reject unknown / non-writable fields
    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}", {"field": k})
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}", {"field": k})

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null", {"field": k})
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        # Blank string check for non-nullable text fields
        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank", {"field": k})

        # Max length check for String(n)
        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}", {"field": k})

        patch[k] = val

    return patch


def read_int_field(payload: dict | None, key: str) -> int:
    """Required integer field outside any model column (e.g. "amount")."""
    if not isinstance(payload, dict) or key not in payload or payload[key] is None:
        raise ValidationError(f"{key} is required", {"field": key})
    return _coerce_int(key, payload[key])


def enforce_rules_sale_line(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    """
    if patch.get("quantity") is not None:
        if patch["quantity"] <= 0:
            raise ValidationError("quantity must be > 0", {"field": "quantity"})
        if patch["quantity"] > MAX_QUANTITY:
            raise ValidationError(f"quantity cannot exceed {MAX_QUANTITY}", {"field": "quantity"})

    price = patch.get("unit_price_cents")
    if price is not None:
        if price < 0:
            raise ValidationError("unit_price_cents must be >= 0", {"field": "unit_price_cents"})
        if price > MAX_PRICE_CENTS:
            raise ValidationError(
                f"unit_price_cents cannot exceed {MAX_PRICE_CENTS}",
                {"field": "unit_price_cents"},
            )


def enforce_rules_cell_create(patch: dict) -> None:
    if patch.get("quantity") is not None and patch["quantity"] < 0:
        raise ValidationError("quantity must be >= 0", {"field": "quantity"})
    if patch.get("quantity") is not None and patch["quantity"] > MAX_QUANTITY:
        raise ValidationError(f"quantity cannot exceed {MAX_QUANTITY}", {"field": "quantity"})


def optional_int_arg(args, key: str) -> int | None:
    """Optional integer query-string parameter."""
    raw = args.get(key)
    if raw is None or str(raw).strip() == "":
        return None
    return _coerce_int(key, raw)


def optional_date_arg(args, key: str):
    """Optional "YYYY-MM-DD" query-string parameter."""
    raw = args.get(key)
    try:
        return parse_iso_date(raw)
    except ValueError:
        raise ValidationError(f"{key} must be a date (YYYY-MM-DD)", {"field": key})
