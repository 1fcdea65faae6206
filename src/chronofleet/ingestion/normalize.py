"""Normalization helpers.

Centralizes defensive parsing of event-stream and provider payloads.
"""

from __future__ import annotations

import math
import re
from datetime import UTC, datetime
from typing import Any

# Threshold to distinguish epoch seconds from milliseconds.
_MS_THRESHOLD = 1e11

_EPOCH_TEXT = re.compile(r"\d+(?:\.\d+)?")


def safe_float(value: Any) -> float | None:
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(result) or math.isinf(result):
        return None
    return result


def safe_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text if text else None


def safe_bool(value: Any, default: bool = False) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in {"1", "true", "yes", "on"}:
            return True
        if normalized in {"0", "false", "no", "off"}:
            return False
    return default


def parse_timestamp(value: Any) -> datetime | None:
    """Convert an ISO string or epoch (seconds **or** milliseconds) to a UTC datetime.

    Naive datetimes are assumed to be UTC. Returns ``None`` when the value
    cannot be interpreted.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo is not None else value.replace(tzinfo=UTC)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        # Bare digits are an epoch, never a compact ISO date.
        if _EPOCH_TEXT.fullmatch(text):
            return parse_timestamp(safe_float(text))
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return parse_timestamp(safe_float(text))
        return parsed if parsed.tzinfo is not None else parsed.replace(tzinfo=UTC)
    ts = safe_float(value)
    if ts is None or ts <= 0:
        return None
    if ts > _MS_THRESHOLD:
        ts /= 1000.0
    return datetime.fromtimestamp(ts, tz=UTC)
