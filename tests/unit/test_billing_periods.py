from datetime import datetime, timezone

import pytest

from app.utils.billing_periods import (
    add_months,
    as_utc,
    calculate_subscription_window,
    from_timestamp,
    normalize_email,
    normalize_phone,
)


def test_monthly_window_adds_one_calendar_month():
    paid_at = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)
    start, end = calculate_subscription_window("monthly", paid_at)
    assert start == paid_at
    assert end == datetime(2026, 4, 10, 12, 0, tzinfo=timezone.utc)


def test_annual_window_adds_one_year():
    paid_at = datetime(2026, 3, 10, tzinfo=timezone.utc)
    _, end = calculate_subscription_window("annual", paid_at)
    assert end == datetime(2027, 3, 10, tzinfo=timezone.utc)


def test_month_end_is_clamped():
    assert add_months(datetime(2026, 1, 31), 1) == datetime(2026, 2, 28)
    assert add_months(datetime(2028, 1, 31), 1) == datetime(2028, 2, 29)
    assert add_months(datetime(2026, 12, 15), 1) == datetime(2027, 1, 15)


def test_invalid_plan_type_raises():
    with pytest.raises(ValueError):
        calculate_subscription_window("weekly")


def test_from_timestamp_is_utc():
    assert from_timestamp(None) is None
    assert from_timestamp(0) == datetime(1970, 1, 1, tzinfo=timezone.utc)


def test_as_utc_handles_naive_values():
    naive = datetime(2026, 5, 1, 8, 30)
    assert as_utc(naive).tzinfo == timezone.utc
    assert as_utc(None) is None


def test_identity_normalization():
    assert normalize_email("  Guest@Example.COM ") == "guest@example.com"
    assert normalize_email("   ") is None
    assert normalize_email(None) is None
    assert normalize_phone("(11) 98888-7777") == "5511988887777"
    assert normalize_phone("+55 11 98888-7777") == "5511988887777"
    assert normalize_phone("") is None
