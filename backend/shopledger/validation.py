from __future__ import annotations
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from shopledger.time_utils import parse_iso_date, parse_iso_datetime

from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import Boolean, Date, DateTime, Integer, Numeric, String, Text
from sqlalchemy.orm import DeclarativeMeta


# Maximum price: 99,999,999.99 (Numeric(12, 2))
MAX_PRICE = Decimal("99999999.99")


class ValidationError(ValueError):
    """400-level input problem."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    - aliases: camelCase API keys mapped onto model attribute names
    - non_negative: numeric fields that must be >= 0
    """
    writable_fields: set[str]
    required_on_create: set[str] = field(default_factory=set)
    aliases: dict[str, str] = field(default_factory=dict)
    non_negative: set[str] = field(default_factory=set)


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Booleans
    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        # fallback: truthiness
        return bool(value)

    # Integers - strict validation to reject floats and scientific notation
    if isinstance(coltype, Integer):
        # Already an int (but not bool which is a subclass of int)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        # String input - must be plain digits (with optional leading minus)
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped:
                raise ValidationError(f"{col.key} must be an integer")
            # Reject scientific notation (e.g., "1e15", "1E10")
            if 'e' in stripped.lower():
                raise ValidationError(f"{col.key} must be a plain integer (scientific notation not allowed)")
            # Reject decimal points (e.g., "12.5")
            if '.' in stripped:
                raise ValidationError(f"{col.key} must be an integer (no decimals)")
            try:
                return int(stripped)
            except ValueError:
                raise ValidationError(f"{col.key} must be an integer")
        # Reject floats explicitly
        if isinstance(value, float):
            raise ValidationError(f"{col.key} must be an integer, not a decimal")
        # Other types
        raise ValidationError(f"{col.key} must be an integer")

    # Money / decimals
    if isinstance(coltype, Numeric):
        if isinstance(value, bool):
            raise ValidationError(f"{col.key} must be a number")
        if isinstance(value, float):
            value = repr(value)
        try:
            dec = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            raise ValidationError(f"{col.key} must be a number")
        if not dec.is_finite():
            raise ValidationError(f"{col.key} must be a number")
        return dec

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except Exception:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            return dt
        raise ValidationError(f"{col.key} must be a datetime")

    # Business dates
    if isinstance(coltype, Date):
        if isinstance(value, (date, str)):
            try:
                d = parse_iso_date(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 date")
            if d is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 date")
            return d
        raise ValidationError(f"{col.key} must be a date")

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
    Returns a cleaned patch dict keyed by model attribute names.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    # camelCase -> attribute names
    normalized = {}
    for k, v in payload.items():
        normalized[policy.aliases.get(k, k)] = v

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if f not in normalized)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    # Reject unknown / non-writable fields
    for k in normalized.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in normalized.items():
        col = cols[k]

        # NULL handling
        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        # Blank string check for non-nullable text fields
        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        # Max length check for String(n)
        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        if k in policy.non_negative and val < 0:
            raise ValidationError(f"{k} must be >= 0")

        patch[k] = val

    return patch


def enforce_rules_inventory(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    for key in ("price", "cost_price"):
        if key in patch and patch[key] is not None and patch[key] > MAX_PRICE:
            raise ValidationError(f"{key} cannot exceed {MAX_PRICE:,}")


RETURNED_ITEM_CONDITIONS = {"returned", "approved", "damaged", "defective", "opened"}


def enforce_rules_returned_item(patch: dict) -> None:
    condition = patch.get("condition")
    if condition is not None and condition not in RETURNED_ITEM_CONDITIONS:
        raise ValidationError(
            f"condition must be one of: {', '.join(sorted(RETURNED_ITEM_CONDITIONS))}"
        )
    if "quantity" in patch and patch["quantity"] is not None and patch["quantity"] < 1:
        raise ValidationError("quantity must be >= 1")


# =============================================================================
# PAGINATION
# =============================================================================

def pagination_params(args, *, default_limit: int = 50, max_limit: int = 1000) -> tuple[int, int, int]:
    """
    Parse ?page=&limit= from request args.

    Returns (page, limit, offset). Invalid values raise ValidationError.
    """
    raw_page = args.get("page")
    raw_limit = args.get("limit")

    page = 1
    if raw_page not in (None, ""):
        try:
            page = int(raw_page)
        except (TypeError, ValueError):
            page = 0
        if page < 1:
            raise ValidationError("Invalid page parameter. Must be a positive integer.")

    limit = default_limit
    if raw_limit not in (None, ""):
        try:
            limit = int(raw_limit)
        except (TypeError, ValueError):
            limit = 0
        if limit < 1 or limit > max_limit:
            raise ValidationError(f"Invalid limit parameter. Must be between 1 and {max_limit}.")

    return page, limit, (page - 1) * limit


def paginated_response(data: list, total: int, page: int, limit: int) -> dict:
    total_pages = (total + limit - 1) // limit if total > 0 else 0
    return {
        "data": data,
        "pagination": {
            "total": total,
            "page": page,
            "limit": limit,
            "totalPages": total_pages,
            "hasNextPage": page < total_pages,
            "hasPrevPage": page > 1,
        },
    }


# =============================================================================
# QUERY STRING HELPERS
# =============================================================================

def date_arg(args, name: str) -> date | None:
    raw = args.get(name)
    if raw in (None, ""):
        return None
    try:
        return parse_iso_date(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an ISO-8601 date (YYYY-MM-DD)")


def int_arg(args, name: str) -> int | None:
    raw = args.get(name)
    if raw in (None, ""):
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be an integer")
