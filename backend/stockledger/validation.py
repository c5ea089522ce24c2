from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Integer, String, Text
from sqlalchemy.orm import DeclarativeMeta

from .errors import ValidationError


# Maximum money value: $9,999,999.99 (999,999,999 cents)
# This prevents database overflow issues and nonsensical prices
MAX_PRICE_CENTS = 999_999_999

# Units per ledger entry, and the ceiling of the 32-bit stock counter
MAX_QUANTITY = 1_000_000
MAX_STOCK = 2_147_483_647

TRANSACTION_TYPES = ("INCREASE", "DECREASE")
STATUSES = ("ACTIVE", "INACTIVE")


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


def coerce_int(key: str, value: Any) -> int:
    """Strict integer coercion: rejects bools, floats and scientific notation."""
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    # String input - must be plain digits (with optional leading minus)
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{key} must be an integer", field=key)
        # Reject scientific notation (e.g., "1e15", "1E10")
        if 'e' in stripped.lower():
            raise ValidationError(f"{key} must be a plain integer (scientific notation not allowed)", field=key)
        # Reject decimal points (e.g., "12.5")
        if '.' in stripped:
            raise ValidationError(f"{key} must be an integer (no decimals)", field=key)
        try:
            return int(stripped)
        except ValueError as exc:
            raise ValidationError(f"{key} must be an integer", field=key) from exc
    # Reject floats explicitly
    if isinstance(value, float):
        raise ValidationError(f"{key} must be an integer, not a decimal", field=key)
    raise ValidationError(f"{key} must be an integer", field=key)


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return coerce_int(col.key, value)

    # Strings / Text
    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    # Default: leave as-is
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
            raise ValidationError(f"Missing required fields: {', '.join(missing)}", field=missing[0])

    cols = _columns_by_key(model)

    # Reject unknown / non-writable fields
    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}", field=k)
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}", field=k)

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        # NULL handling
        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null", field=k)
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        # Blank string check for non-nullable text fields
        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank", field=k)

        # Max length check for String(n)
        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}", field=k)

        patch[k] = val

    return patch


def _check_money(key: str, value, *, allow_zero: bool) -> None:
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValidationError(f"{key} must be an integer number of cents", field=key)
    if allow_zero and value < 0:
        raise ValidationError(f"{key} must be >= 0", field=key)
    if not allow_zero and value <= 0:
        raise ValidationError(f"{key} must be > 0", field=key)
    if value > MAX_PRICE_CENTS:
        raise ValidationError(f"{key} cannot exceed {MAX_PRICE_CENTS} (${MAX_PRICE_CENTS / 100:,.2f})", field=key)


def require_text(key: str, value) -> str:
    if value is None or str(value).strip() == "":
        raise ValidationError(f"{key} is required", field=key)
    return str(value).strip()


def enforce_status(status) -> str:
    if not isinstance(status, str) or status.strip().upper() not in STATUSES:
        raise ValidationError("status must be ACTIVE or INACTIVE", field="status")
    return status.strip().upper()


def enforce_rules_product(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    for key in ("price_cents", "cost_cents"):
        if key in patch and patch[key] is not None:
            _check_money(key, patch[key], allow_zero=True)

    if "stock" in patch and patch["stock"] is not None:
        stock = patch["stock"]
        if not isinstance(stock, int) or isinstance(stock, bool):
            raise ValidationError("initial stock must be an integer", field="stock")
        if stock < 0:
            raise ValidationError("initial stock must be >= 0", field="stock")
        if stock > MAX_QUANTITY:
            raise ValidationError(f"initial stock cannot exceed {MAX_QUANTITY}", field="stock")


def enforce_rules_transaction(
    *,
    transaction_type,
    quantity,
    unit_price_cents,
) -> str:
    """
    Shape rules for a ledger transaction, checked before any lookup.

    Returns the normalized transaction type.
    """
    if not isinstance(transaction_type, str) or transaction_type.strip().upper() not in TRANSACTION_TYPES:
        raise ValidationError("transaction_type must be INCREASE or DECREASE", field="transaction_type")

    if not isinstance(quantity, int) or isinstance(quantity, bool):
        raise ValidationError("quantity must be an integer", field="quantity")
    if quantity <= 0:
        raise ValidationError("quantity must be > 0", field="quantity")
    if quantity > MAX_QUANTITY:
        raise ValidationError(f"quantity cannot exceed {MAX_QUANTITY}", field="quantity")

    _check_money("unit_price_cents", unit_price_cents, allow_zero=False)

    return transaction_type.strip().upper()
