"""
Unit Tests - Data Transformation
"""
from datetime import datetime
from decimal import Decimal

import pytest

from txn_warehouse.database.models import Gender, MaritalStatus
from txn_warehouse.transformation.cleaners import (
    is_missing,
    normalize_label,
    parse_age,
    parse_amount,
    parse_flag,
    parse_gender,
    parse_marital_status,
    parse_timestamp,
    parse_transaction_id,
)


class TestNormalizeLabel:
    """Tests for categorical normalization"""

    @pytest.mark.parametrize("raw", ["North East", " north  east ", "NORTH EAST", "North\tEast"])
    def test_variants_collapse(self, raw):
        assert normalize_label(raw) == "north east"

    @pytest.mark.parametrize("raw", [None, "", "   ", "NaN", "Missing", "null", "N/A"])
    def test_missing_maps_to_unknown(self, raw):
        assert normalize_label(raw) == "unknown"

    def test_is_missing(self):
        assert is_missing(" nan ")
        assert not is_missing("0")


class TestParseAmount:
    """Tests for amount parsing"""

    def test_plain_and_currency(self):
        assert parse_amount("120.5") == Decimal("120.50")
        assert parse_amount("$1,250.00") == Decimal("1250.00")
        assert parse_amount(" 0 ") == Decimal("0.00")

    def test_rounds_half_up_to_cents(self):
        assert parse_amount("10.005") == Decimal("10.01")

    @pytest.mark.parametrize("raw", ["", "Missing", "abc", "-15.00", "inf", "1e20"])
    def test_rejected(self, raw):
        with pytest.raises(ValueError):
            parse_amount(raw)


class TestParseAge:
    """Tests for age parsing"""

    def test_whole_numbers(self):
        assert parse_age("34") == 34
        assert parse_age("34.0") == 34

    @pytest.mark.parametrize("raw", ["0", "120", "150", "-3", "34.5", "abc", "", "NaN", "1e-5"])
    def test_rejected(self, raw):
        with pytest.raises(ValueError):
            parse_age(raw)

    @pytest.mark.parametrize("raw", ["1e999999999", "-1e999999999", "9" * 5000])
    def test_huge_values_rejected_without_expansion(self, raw):
        with pytest.raises(ValueError, match="outside"):
            parse_age(raw)


class TestParseTimestamp:
    """Tests for timestamp parsing"""

    @pytest.mark.parametrize("raw, expected", [
        ("2024-03-01 10:15:00", datetime(2024, 3, 1, 10, 15)),
        ("03/01/2024 10:15", datetime(2024, 3, 1, 10, 15)),
        ("2024-03-01T10:15:00", datetime(2024, 3, 1, 10, 15)),
        ("2024-03-01", datetime(2024, 3, 1)),
    ])
    def test_known_formats(self, raw, expected):
        assert parse_timestamp(raw) == expected

    def test_aware_iso_converted_to_utc(self):
        assert parse_timestamp("2024-03-01T12:00:00+02:00") == datetime(2024, 3, 1, 10, 0)

    def test_outside_window(self):
        with pytest.raises(ValueError, match="before"):
            parse_timestamp("1850-01-01", min_date=datetime(2000, 1, 1))
        with pytest.raises(ValueError, match="not before"):
            parse_timestamp("2200-01-01", max_date=datetime(2100, 1, 1))

    def test_window_upper_bound_is_exclusive(self):
        window = {"min_date": datetime(2000, 1, 1), "max_date": datetime(2100, 1, 1)}
        assert parse_timestamp("2000-01-01", **window) == datetime(2000, 1, 1)
        with pytest.raises(ValueError):
            parse_timestamp("2100-01-01", **window)

    @pytest.mark.parametrize("raw", ["2023-13-45", "yesterday", "", "NaN"])
    def test_unparsable(self, raw):
        with pytest.raises(ValueError):
            parse_timestamp(raw)


class TestCategoricalParsers:
    """Tests for gender, marital status, flags and ids"""

    def test_gender(self):
        assert parse_gender("Female") == Gender.FEMALE
        assert parse_gender(" M ") == Gender.MALE
        assert parse_gender("") == Gender.UNKNOWN
        assert parse_gender("other") == Gender.UNKNOWN

    def test_marital_status(self):
        assert parse_marital_status("Single") == MaritalStatus.SINGLE
        assert parse_marital_status("1") == MaritalStatus.MARRIED
        with pytest.raises(ValueError):
            parse_marital_status("divorced")
        with pytest.raises(ValueError):
            parse_marital_status("")

    def test_flag(self):
        assert parse_flag("1") is True
        assert parse_flag("1.0") is True
        assert parse_flag("0") is False
        assert parse_flag("") is False
        with pytest.raises(ValueError):
            parse_flag("maybe")

    def test_transaction_id(self):
        assert parse_transaction_id(" 42 ") == 42
        for raw in ["0", "-1", "abc", "", str(2**63)]:
            with pytest.raises(ValueError):
                parse_transaction_id(raw)
