from __future__ import annotations

from datetime import UTC, date, datetime, timedelta, timezone

import pytest

from chronofleet import delivery_id
from chronofleet.delivery_id import format_delivery_id, format_order_number, normalize_date


def test_formats_iso_date_and_last_four_characters() -> None:
    assert format_delivery_id("abc123", "2024-12-11") == "CHLV–241211-C123"


def test_short_id_is_right_padded() -> None:
    assert format_delivery_id("7", "2024-01-05") == "CHLV–240105-7000"


def test_punctuation_is_stripped_before_taking_suffix() -> None:
    assert format_delivery_id("a1b2-c3d4-e5f6", "2024-12-11") == "CHLV–241211-E5F6"


@pytest.mark.parametrize("created_at", ["11/12/2024", "11-12-2024", "2024/12/11", date(2024, 12, 11)])
def test_date_shapes_resolve_to_the_same_day(created_at: object) -> None:
    assert format_delivery_id("abc123", created_at) == "CHLV–241211-C123"  # type: ignore[arg-type]


def test_aware_datetime_is_converted_to_utc() -> None:
    late_evening = datetime(2024, 12, 11, 23, 30, tzinfo=timezone(timedelta(hours=-2)))
    assert normalize_date(late_evening) == date(2024, 12, 12)


def test_missing_inputs_fall_back_to_today_and_zeros(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(delivery_id, "_today", lambda: date(2025, 3, 9))
    assert format_delivery_id() == "CHLV–250309-0000"
    assert format_delivery_id(None, "not a date") == "CHLV–250309-0000"


def test_is_deterministic_for_fixed_inputs() -> None:
    created = datetime(2024, 6, 1, 8, 0, tzinfo=UTC)
    assert format_delivery_id("order-99xz", created) == format_delivery_id("order-99xz", created)


def test_order_number() -> None:
    assert format_order_number("3f2a9c1d-77aa") == "CMD-3F2A9C1D"
    assert format_order_number("ab") == "CMD-AB000000"
    assert format_order_number(None) == "CMD-00000000"
