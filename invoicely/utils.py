"""Small shared helpers: timezone handling, period math, money, slugs, text cleanup."""

import calendar
import re
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation

import bleach


def utcnow():
    return datetime.now(timezone.utc)


def as_utc(value):
    """Return ``value`` as an aware UTC datetime.

    SQLite returns naive datetimes; Postgres returns aware ones.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def add_months(value, months):
    """Shift a datetime by whole months, clamping the day (Jan 31 + 1 -> Feb 28/29)."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def to_decimal(value, field="amount"):
    """Parse a JSON number/string into a 2dp Decimal. Raises ValueError."""
    if value is None or isinstance(value, bool):
        raise ValueError(f"{field} is required.")
    try:
        return Decimal(str(value)).quantize(Decimal("0.01"))
    except (InvalidOperation, ValueError):
        raise ValueError(f"{field} must be a number.")


def money(value):
    """Decimal -> float for JSON bodies (None stays None)."""
    if value is None:
        return None
    return float(value)


def iso(value):
    value = as_utc(value)
    return value.isoformat() if value else None


def slugify(value):
    """Lowercase, only a-z 0-9 and hyphens."""
    value = (value or "").lower()
    value = re.sub(r"[^a-z0-9]+", "-", value)
    return value.strip("-")


def parse_datetime(value, field="date"):
    """Parse an ISO date/datetime string into an aware UTC datetime."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        raise ValueError(f"{field} must be an ISO date.")
    return as_utc(parsed)


def clean_text(value):
    """Strip HTML from user-supplied free text. None and non-strings pass through."""
    if not isinstance(value, str):
        return value
    return bleach.clean(value, tags=[], strip=True).strip()
