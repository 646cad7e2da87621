from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP
from typing import Any


# Maximum price: $9,999,999.99 (999,999,999 cents)
# This prevents database overflow issues and nonsensical prices
MAX_PRICE_CENTS = 999_999_999

# A single line on a tab; larger values are almost always a scan loop
MAX_LINE_QUANTITY = 9_999


class ValidationError(ValueError):
    """400-level input problem. Raised before any mutation."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., illegal state transition)."""


class NotFoundError(LookupError):
    """404-level lookup failure (product, order or company missing in tenant)."""


class CheckoutInProgressError(ConflictError):
    """Another operator holds the checkout for the same tab."""


class TotalChangedError(ConflictError):
    """The tab changed between opening checkout and confirming payment."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class TransactionFailed(Exception):
    """
    The multi-step finalize sequence could not complete.

    Prior state is left untouched (the unit of work was rolled back), so the
    operator may retry.
    """
    retryable = True

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


def coerce_int(field: str, value: Any) -> int:
    """
    Strict integer coercion for JSON input.

    Rejects floats, booleans, scientific notation and decimal strings.
    """
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer")
        # Reject scientific notation (e.g., "1e15", "1E10")
        if 'e' in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        # Reject decimal points (e.g., "12.5")
        if '.' in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    raise ValidationError(f"{field} must be an integer")


def require_quantity(value: Any, field: str = "quantity") -> int:
    qty = coerce_int(field, value)
    if qty < 1:
        raise ValidationError(f"{field} must be >= 1")
    if qty > MAX_LINE_QUANTITY:
        raise ValidationError(f"{field} cannot exceed {MAX_LINE_QUANTITY}")
    return qty


def require_price_cents(value: Any, field: str = "price_cents") -> int:
    price = coerce_int(field, value)
    if price < 0:
        raise ValidationError(f"{field} must be >= 0")
    if price > MAX_PRICE_CENTS:
        raise ValidationError(f"{field} cannot exceed {MAX_PRICE_CENTS} (${MAX_PRICE_CENTS / 100:,.2f})")
    return price


def require_text(payload: dict, field: str, *, max_length: int = 255) -> str:
    raw = payload.get(field)
    if raw is None or str(raw).strip() == "":
        raise ValidationError(f"{field} is required")
    value = str(raw).strip()
    if len(value) > max_length:
        raise ValidationError(f"{field} exceeds max length {max_length}")
    return value


def to_amount(cents: int) -> float:
    """Integer cents -> currency amount rounded to 2 decimals (half-up)."""
    return float((Decimal(cents) / 100).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))
