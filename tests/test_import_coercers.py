"""Tests for data type coercers."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from padu_api.imports.coercers import (
    coerce_provider,
    coerce_rating,
    coerce_review_datetime,
    coerce_string,
    to_iso8601,
)


class TestCoerceProvider:
    """Test provider coercion."""

    @pytest.mark.parametrize("value", ["google", " Google ", "TRIPADVISOR", "booking"])
    def test_valid(self, value):
        result = coerce_provider(value)
        assert result.success
        assert result.coerced_value == value.strip().lower()

    @pytest.mark.parametrize("value", ["yelp", "", None, "google maps"])
    def test_invalid(self, value):
        assert not coerce_provider(value).success


class TestCoerceRating:
    """Test rating coercion."""

    @pytest.mark.parametrize("value,expected", [("1", 1), ("5", 5), (" 3 ", 3), (4, 4)])
    def test_valid(self, value, expected):
        result = coerce_rating(value)
        assert result.success
        assert result.coerced_value == expected

    @pytest.mark.parametrize("value", ["0", "6", "abc", "", "4.5", "-1", None])
    def test_invalid(self, value):
        assert not coerce_rating(value).success


class TestCoerceReviewDatetime:
    """Test date coercion."""

    def test_iso_with_zulu(self):
        result = coerce_review_datetime("2025-07-22T14:05:00Z")

        assert result.success
        assert result.coerced_value == datetime(2025, 7, 22, 14, 5, tzinfo=timezone.utc)

    def test_iso_with_offset_is_converted_to_utc(self):
        result = coerce_review_datetime("2025-07-22T16:05:00+02:00")

        assert result.coerced_value == datetime(2025, 7, 22, 14, 5, tzinfo=timezone.utc)

    def test_naive_values_are_utc(self):
        result = coerce_review_datetime("2024-01-15")

        assert result.success
        assert result.coerced_value == datetime(2024, 1, 15, tzinfo=timezone.utc)

    def test_us_date(self):
        result = coerce_review_datetime("07/04/2024")

        assert result.success
        assert result.coerced_value == datetime(2024, 7, 4, tzinfo=timezone.utc)

    @pytest.mark.parametrize("value", ["13/40/2024", "02/30/2024", "not-a-date", "", "2024-13-01"])
    def test_invalid(self, value):
        assert not coerce_review_datetime(value).success

    def test_leap_day(self):
        assert coerce_review_datetime("02/29/2024").success
        assert not coerce_review_datetime("02/29/2023").success


class TestCoerceString:
    def test_empty_becomes_none(self):
        assert coerce_string("   ").coerced_value is None
        assert coerce_string(None).coerced_value is None

    def test_max_length(self):
        assert coerce_string("abcd", {"max_length": 3}).success is False
        assert coerce_string("abc", {"max_length": 3}).coerced_value == "abc"


def test_to_iso8601():
    value = datetime(2025, 7, 22, 14, 5, tzinfo=timezone.utc)

    assert to_iso8601(value) == "2025-07-22T14:05:00Z"
    assert to_iso8601(datetime(2025, 7, 22, 14, 5)) == "2025-07-22T14:05:00Z"
