"""Utility functions for time and money handling."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation

from payment import FIXED, HOURLY, Money

PAYMENT_KIND_CODES = [
    ("H", HOURLY, "H - Hourly rate"),
    ("F", FIXED, "F - Fixed fee"),
]


def utc_now() -> datetime:
    """The current instant as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def format_duration(duration: timedelta) -> str:
    """Format a duration as H:MM:SS, e.g. 1:05:09."""
    total = int(duration.total_seconds())
    sign = "-" if total < 0 else ""
    total = abs(total)
    hours, rem = divmod(total, 3600)
    minutes, seconds = divmod(rem, 60)
    return f"{sign}{hours}:{minutes:02d}:{seconds:02d}"


def parse_money(val: str) -> Money | None:
    """Parse a pounds amount like '12.50' or '£7' into Money. None if invalid."""
    val = val.strip().lstrip("£").replace(",", "")
    if not val:
        return None
    try:
        amount = Decimal(val)
    except InvalidOperation:
        return None
    if not amount.is_finite() or amount < 0:
        return None
    pence = amount * 100
    if pence != pence.to_integral_value():
        return None
    return Money(int(pence))


def payment_kind_from_code(code: str) -> str | None:
    """Map a one-letter kind code (H/F) to a payment kind."""
    code = code.strip().upper()
    for letter, kind, _ in PAYMENT_KIND_CODES:
        if code == letter:
            return kind
    return None
