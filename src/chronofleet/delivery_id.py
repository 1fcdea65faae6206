"""Human-readable delivery codes.

``format_delivery_id`` must return byte-identical output in every service
that formats delivery codes (admin console and backend), so it depends on
nothing but its inputs and, for missing dates, today's date.
"""

from __future__ import annotations

import re
from datetime import UTC, date, datetime

from chronofleet._constants import DELIVERY_ID_PREFIX, DELIVERY_ID_SEPARATOR, ORDER_NUMBER_PREFIX

_NON_ALNUM = re.compile(r"[^a-zA-Z0-9]")
_DATE_PARTS = re.compile(r"[/\-]")


def _today() -> date:
    return datetime.now(UTC).date()


def _from_parts(first: str, second: str, third: str) -> date | None:
    """Build a date from three tokens, year-first when the first token has 4 digits."""
    try:
        if len(first) == 4:
            return date(int(first), int(second), int(third))
        return date(int(third), int(second), int(first))
    except ValueError:
        return None


def normalize_date(value: str | date | datetime | None) -> date:
    """Resolve *value* to a calendar date, falling back to today."""
    if value is None:
        return _today()

    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(UTC)
        return value.date()

    if isinstance(value, date):
        return value

    text = str(value).strip()
    if not text:
        return _today()

    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        parsed = None
    if parsed is not None:
        return normalize_date(parsed)

    parts = [part.strip() for part in _DATE_PARTS.split(text)]
    if len(parts) == 3:
        resolved = _from_parts(*parts)
        if resolved is not None:
            return resolved

    return _today()


def _date_part(day: date) -> str:
    return f"{day.year % 100:02d}{day.month:02d}{day.day:02d}"


def _clean(raw_id: str | None) -> str:
    if not raw_id:
        return ""
    return _NON_ALNUM.sub("", str(raw_id)).upper()


def _suffix(raw_id: str | None) -> str:
    clean = _clean(raw_id)
    if len(clean) >= 4:
        return clean[-4:]
    return clean.ljust(4, "0")


def format_delivery_id(raw_id: str | None = None, created_at: str | date | datetime | None = None) -> str:
    """Format ``CHLV–YYMMDD-XXXX`` from a raw id and its creation date.

    >>> format_delivery_id("abc123", "2024-12-11")
    'CHLV–241211-C123'
    """
    day = normalize_date(created_at)
    return f"{DELIVERY_ID_PREFIX}{DELIVERY_ID_SEPARATOR}{_date_part(day)}-{_suffix(raw_id)}"


def format_order_number(raw_id: str | None = None) -> str:
    """Format ``CMD-XXXXXXXX`` from the first eight alphanumerics of *raw_id*."""
    clean = _clean(raw_id)
    if not clean:
        return f"{ORDER_NUMBER_PREFIX}-00000000"
    suffix = clean[:8] if len(clean) >= 8 else clean.ljust(8, "0")
    return f"{ORDER_NUMBER_PREFIX}-{suffix}"
