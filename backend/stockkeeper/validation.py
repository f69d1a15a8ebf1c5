from __future__ import annotations

from dataclasses import dataclass, field

from .errors import InvalidInputError


# Largest quantity a single movement or line item may carry
MAX_QUANTITY = 1_000_000
# On-hand counter is a 32-bit INTEGER column
MAX_STOCK_QUANTITY = 2_147_483_647


@dataclass(frozen=True)
class PayloadPolicy:
    """
    Central policy layer for request bodies:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: frozenset[str]
    required_on_create: frozenset[str] = field(default_factory=frozenset)


def coerce_int(value, field_name: str) -> int:
    """Strict integer parsing: rejects floats, bools, decimals and scientific notation."""
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    # String input - must be plain digits (with optional leading minus)
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise InvalidInputError(f"{field_name} must be an integer", field=field_name)
        if "e" in stripped.lower():
            raise InvalidInputError(
                f"{field_name} must be a plain integer (scientific notation not allowed)", field=field_name
            )
        if "." in stripped:
            raise InvalidInputError(f"{field_name} must be an integer (no decimals)", field=field_name)
        try:
            return int(stripped)
        except ValueError:
            raise InvalidInputError(f"{field_name} must be an integer", field=field_name)
    if isinstance(value, float):
        raise InvalidInputError(f"{field_name} must be an integer, not a decimal", field=field_name)
    raise InvalidInputError(f"{field_name} must be an integer", field=field_name)


def coerce_optional_int(value, field_name: str) -> int | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    return coerce_int(value, field_name)


def validate_payload(*, payload, policy: PayloadPolicy, partial: bool) -> dict:
    """
    Checks an incoming JSON object against a policy.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    Returns a shallow copy with only writable fields.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise InvalidInputError("Invalid JSON payload")

    if not partial:
        missing = sorted(f for f in policy.required_on_create if f not in payload)
        if missing:
            raise InvalidInputError(f"Missing required fields: {', '.join(missing)}", field=missing[0])

    # Reject unknown / non-writable fields
    for key in payload:
        if key not in policy.writable_fields:
            raise InvalidInputError(f"Field not allowed: {key}", field=key)

    return dict(payload)


def require_int(value, field_name: str) -> int:
    """Already-parsed integer (service layer); strings are not accepted here."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidInputError(f"{field_name} must be an integer", field=field_name)
    return value


def optional_int(value, field_name: str) -> int | None:
    if value is None:
        return None
    return require_int(value, field_name)


def optional_text(value, field_name: str, max_length: int | None = None) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise InvalidInputError(f"{field_name} must be a string", field=field_name)
    if max_length is not None and len(value) > max_length:
        raise InvalidInputError(
            f"{field_name} cannot exceed {max_length} characters", field=field_name
        )
    return value


def page_bounds(limit, offset, *, default_limit: int, max_limit: int) -> tuple[int, int]:
    """Validate limit/offset paging; limit falls back to default_limit."""
    if limit is None:
        limit = default_limit
    if isinstance(limit, bool) or not isinstance(limit, int) or limit <= 0:
        raise InvalidInputError("limit must be a positive integer", field="limit")
    if limit > max_limit:
        raise InvalidInputError(f"limit cannot exceed {max_limit}", field="limit")
    if offset is None:
        offset = 0
    if isinstance(offset, bool) or not isinstance(offset, int) or offset < 0:
        raise InvalidInputError("offset must be a non-negative integer", field="offset")
    return limit, offset
