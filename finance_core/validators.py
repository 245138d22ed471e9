"""Validation helpers shared across finance tracker services."""

from __future__ import annotations

import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Iterable, Optional

from .exceptions import ValidationError
from .models import parse_date

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def _quantize_two_decimals(amount: Decimal) -> Decimal:
    """Round the amount to two decimal places using HALF_UP rounding."""
    return amount.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def parse_amount(raw: object, field: str, *, allow_zero: bool = True) -> Decimal:
    """Convert raw input to a non-negative Decimal with exactly two fraction digits."""
    if isinstance(raw, bool) or raw is None:
        raise ValidationError(f"{field} must be a numeric value")
    try:
        amount = Decimal(str(raw))
    except (InvalidOperation, TypeError) as exc:
        raise ValidationError(f"{field} must be a numeric value") from exc

    if not amount.is_finite():
        raise ValidationError(f"{field} must be a finite number")
    if amount < 0:
        raise ValidationError(f"{field} must not be negative")
    if amount == 0 and not allow_zero:
        raise ValidationError(f"{field} must be greater than zero")

    return _quantize_two_decimals(amount)


def validate_required_str(value: object, field: str, max_length: int) -> str:
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    trimmed = value.strip()
    if not trimmed:
        raise ValidationError(f"{field} cannot be empty")
    if len(trimmed) > max_length:
        raise ValidationError(f"{field} must be at most {max_length} characters")
    return trimmed


def validate_optional_str(value: object, field: str, max_length: int) -> Optional[str]:
    if value is None or value == "":
        return None
    return validate_required_str(value, field, max_length)


def validate_email(value: object, field: str = "email") -> Optional[str]:
    email = validate_optional_str(value, field, 254)
    if email is not None and not EMAIL_PATTERN.fullmatch(email):
        raise ValidationError(f"{field} must be a valid email address")
    return email


def validate_date(value: object, field: str) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return parse_date(value)
        except ValueError as exc:
            raise ValidationError(f"{field} must be an ISO 8601 date") from exc
    raise ValidationError(f"{field} must be a date or ISO 8601 string")


def validate_optional_date(value: object, field: str) -> Optional[date]:
    if value is None or value == "":
        return None
    return validate_date(value, field)


def validate_bool(value: object, field: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in {"true", "false"}:
        return value.strip().lower() == "true"
    raise ValidationError(f"{field} must be a boolean")


def validate_enum(value: object, field: str, allowed: Iterable[str]) -> str:
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    canonical = value.strip().lower()
    if canonical not in allowed:
        raise ValidationError(f"{field} must be one of: {', '.join(sorted(allowed))}")
    return canonical


def ensure_date_order(start: date, end: Optional[date], start_field: str, end_field: str) -> None:
    if end is not None and end < start:
        raise ValidationError(f"{end_field} must not be earlier than {start_field}")
