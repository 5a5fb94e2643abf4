"""Tests for core/normalization.py"""

from datetime import date
from decimal import Decimal

import pytest

from commission_engine.core.normalization import (
    AmountParseError,
    display_label,
    normalize_label,
    parse_amount,
    previous_period,
    validate_period,
)


class TestNormalizeLabel:

    @pytest.mark.parametrize("a,b", [
        ("Anna Smith", "anna smith"),
        ("  Anna   Smith ", "anna smith"),
        ("@AnnaSmith", "annasmith"),
        ("@ AnnaSmith", "annasmith"),
        ("ＡＮＮＡ", "anna"),
        ("Straße", "STRASSE"),
        ("anna\tsmith", "Anna Smith"),
    ])
    def test_equivalent_labels(self, a, b):
        assert normalize_label(a) == normalize_label(b)

    def test_distinct_labels(self):
        assert normalize_label("anna.smith") != normalize_label("anna smith")

    @pytest.mark.parametrize("raw", [None, "", "   ", "@"])
    def test_empty(self, raw):
        assert normalize_label(raw) == ""

    def test_display_label_keeps_case(self):
        assert display_label("  Anna   Smith ") == "Anna Smith"


class TestParseAmount:

    @pytest.mark.parametrize("raw,expected", [
        (None, "0"),
        ("", "0"),
        (1500, "1500"),
        (1500.5, "1500.5"),
        (Decimal("12.34"), "12.34"),
        ("1500", "1500"),
        ("1500,50", "1500.50"),
        ("1500.50", "1500.50"),
        ("€1.234,56", "1234.56"),
        ("$1,234.56", "1234.56"),
        ("1,234,567", "1234567"),
        ("1.234.567", "1234567"),
        ("1 234,56 EUR", "1234.56"),
        ("-25,5", "-25.5"),
        ("(40.00)", "-40.00"),
    ])
    def test_valid(self, raw, expected):
        assert parse_amount(raw) == Decimal(expected)

    @pytest.mark.parametrize("raw,expected", [
        ("2,000", "2000"),
        ("12,345", "12345"),
        ("€999,000", "999000"),
        ("(1,000)", "-1000"),
        ("0,125", "0.125"),
        ("1234,567", "1234.567"),
        ("12,3456", "12.3456"),
    ])
    def test_single_comma_before_three_digits_is_thousands_group(self, raw, expected):
        assert parse_amount(raw) == Decimal(expected)

    @pytest.mark.parametrize("raw", ["abc", "12a", True, "1,2.3.4x", "NaN"])
    def test_invalid(self, raw):
        with pytest.raises(AmountParseError):
            parse_amount(raw)

    def test_parse_error_is_value_error(self):
        assert issubclass(AmountParseError, ValueError)


class TestPeriods:

    def test_validate_period(self):
        assert validate_period(" 202508 ") == "202508"

    @pytest.mark.parametrize("raw", ["2025-08", "202513", "202500", "2508", "", None])
    def test_invalid_period(self, raw):
        with pytest.raises(ValueError):
            validate_period(raw)

    def test_previous_period(self):
        assert previous_period(date(2025, 9, 1)) == "202508"
        assert previous_period(date(2025, 1, 15)) == "202412"
