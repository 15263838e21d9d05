# Overview: Request payload parsing and validation helpers for API routes.

from __future__ import annotations

from datetime import datetime
from typing import Any

from .entitlements import PAID_TIERS, TIERS
from .time_utils import parse_iso_datetime


# Maximum price: 9,999,999.99 RUB (999,999,999 kopecks)
# This prevents database overflow issues and nonsensical prices
MAX_PRICE_CENTS = 999_999_999

MIN_DURATION_DAYS = 1
MAX_DURATION_DAYS = 365
DEFAULT_DURATION_DAYS = 30

MAX_NEWS_TITLE_LENGTH = 255


class ValidationError(ValueError):
    """400-level input problem."""


def require_json_object(payload: Any) -> dict:
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    return payload


def first_present(payload: dict, *keys: str) -> Any:
    """Value of the first key present in payload (accepts camelCase and snake_case aliases)."""
    for key in keys:
        if key in payload:
            return payload[key]
    return None


def parse_strict_int(value: Any, field: str) -> int:
    """
    Integers only: rejects bools, floats, decimals and scientific notation.
    Digit strings are accepted.
    """
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer")
        # Reject scientific notation (e.g., "1e15", "1E10")
        if "e" in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        # Reject decimal points (e.g., "12.5")
        if "." in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    raise ValidationError(f"{field} must be an integer")


def parse_tier(value: Any, *, paid_only: bool = False) -> str:
    allowed = PAID_TIERS if paid_only else TIERS
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"tier is required. Must be one of: {', '.join(allowed)}")
    tier = value.strip().upper()
    if tier not in allowed:
        raise ValidationError(f"Invalid tier '{value}'. Must be one of: {', '.join(allowed)}")
    return tier


def parse_duration_days(value: Any) -> int:
    """Paid period length in days; defaults to 30, must be within 1..365."""
    if value is None:
        return DEFAULT_DURATION_DAYS
    days = parse_strict_int(value, "durationDays")
    if days < MIN_DURATION_DAYS or days > MAX_DURATION_DAYS:
        raise ValidationError(
            f"durationDays must be between {MIN_DURATION_DAYS} and {MAX_DURATION_DAYS}"
        )
    return days


def parse_bool(value: Any, field: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in {"true", "false"}:
        return value.strip().lower() == "true"
    raise ValidationError(f"{field} must be a boolean")


def parse_price_cents(value: Any, field: str = "price") -> int | None:
    if value is None:
        return None
    price = parse_strict_int(value, field)
    if price < 0:
        raise ValidationError(f"{field} must be >= 0")
    if price > MAX_PRICE_CENTS:
        raise ValidationError(f"{field} cannot exceed {MAX_PRICE_CENTS}")
    return price


def parse_optional_datetime(value: Any, field: str) -> datetime | None:
    """ISO-8601 string (naive = UTC, Z or offset converted) or None."""
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be an ISO-8601 datetime")
    try:
        dt = parse_iso_datetime(value)
    except ValueError:
        raise ValidationError(f"{field} must be an ISO-8601 datetime")
    if dt is None:
        raise ValidationError(f"{field} must be an ISO-8601 datetime")
    return dt


def parse_required_text(value: Any, field: str, *, max_length: int | None = None) -> str:
    if value is None or not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} is required")
    text = value.strip()
    if max_length and len(text) > max_length:
        raise ValidationError(f"{field} exceeds max length {max_length}")
    return text


def parse_optional_text(value: Any, field: str, *, max_length: int | None = None) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    text = value.strip()
    if not text:
        return None
    if max_length and len(text) > max_length:
        raise ValidationError(f"{field} exceeds max length {max_length}")
    return text
