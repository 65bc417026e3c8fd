"""
Unit Tests - Data Quality
"""
from collections import Counter
from datetime import datetime
from decimal import Decimal

import pytest

from txn_warehouse.database.models import Gender, MaritalStatus
from txn_warehouse.errors import ParseError, RejectionReason, ValidationError
from txn_warehouse.ingestion.parser import FIELDS, RawRecord, parse_records
from txn_warehouse.quality.validators import (
    RecordValidator,
    Rejection,
    TransactionRecord,
    summarize_rejections,
    validate_records,
)


def raw_record(line_number: int = 2, **overrides) -> RawRecord:
    fields = {
        "transaction_id": "10",
        "timestamp": "2024-03-01 10:15:00",
        "gender": "Female",
        "age": "34",
        "marital_status": "Single",
        "region": " North ",
        "tier": "GOLD",
        "employment_status": "Employed",
        "payment_method": "Credit  Card",
        "is_referral": "1",
        "amount": "$120.50",
    }
    fields.update(overrides)
    assert set(fields) == set(FIELDS)
    return RawRecord(line_number=line_number, fields=fields)


class TestRecordValidator:
    """Tests for RecordValidator"""

    @pytest.fixture
    def validator(self) -> RecordValidator:
        return RecordValidator(min_date=datetime(2000, 1, 1), max_date=datetime(2100, 1, 1))

    def test_clean_record(self, validator):
        record = validator.clean(raw_record())

        assert isinstance(record, TransactionRecord)
        assert record.transaction_id == 10
        assert record.gender == Gender.FEMALE
        assert record.marital_status == MaritalStatus.SINGLE
        assert record.region == "north"
        assert record.tier == "gold"
        assert record.payment_method == "credit card"
        assert record.is_referral is True
        assert record.amount == Decimal("120.50")
        assert record.demographics == (Gender.FEMALE, 34, MaritalStatus.SINGLE)
        assert record.line_number == 2

    def test_missing_categorical_becomes_unknown(self, validator):
        record = validator.clean(raw_record(region="", tier="NaN", gender=""))

        assert record.region == "unknown"
        assert record.tier == "unknown"
        assert record.gender == Gender.UNKNOWN

    @pytest.mark.parametrize("overrides, reason", [
        ({"amount": "-15.00"}, RejectionReason.MISSING_AMOUNT),
        ({"amount": ""}, RejectionReason.MISSING_AMOUNT),
        ({"amount": "twelve"}, RejectionReason.MISSING_AMOUNT),
        ({"age": "150"}, RejectionReason.INVALID_AGE),
        ({"age": "0"}, RejectionReason.INVALID_AGE),
        ({"age": "Missing"}, RejectionReason.INVALID_AGE),
        ({"timestamp": "2023-13-45"}, RejectionReason.INVALID_DATE),
        ({"timestamp": "1850-01-01"}, RejectionReason.INVALID_DATE),
        ({"marital_status": "divorced"}, RejectionReason.MALFORMED_ROW),
        ({"is_referral": "maybe"}, RejectionReason.MALFORMED_ROW),
        ({"transaction_id": "abc"}, RejectionReason.MALFORMED_ROW),
        ({"region": "x" * 101}, RejectionReason.MALFORMED_ROW),
    ])
    def test_single_reason(self, validator, overrides, reason):
        outcome = validator.validate(raw_record(**overrides))

        assert isinstance(outcome, Rejection)
        assert outcome.reason == reason
        assert outcome.line_number == 2

    def test_first_failure_wins(self, validator):
        outcome = validator.validate(raw_record(amount="-1", age="150", timestamp="bad"))
        assert outcome.reason == RejectionReason.MISSING_AMOUNT

        outcome = validator.validate(raw_record(age="150", timestamp="bad"))
        assert outcome.reason == RejectionReason.INVALID_AGE

        outcome = validator.validate(raw_record(marital_status="?", amount="-1"))
        assert outcome.reason == RejectionReason.MALFORMED_ROW

    def test_malformed_raw_record(self, validator):
        raw = RawRecord(line_number=7, malformed=True, error="expected 11 fields, found 3")

        with pytest.raises(ParseError) as exc:
            validator.clean(raw)
        assert exc.value.line_number == 7
        assert exc.value.reason == RejectionReason.MALFORMED_ROW

    def test_clean_raises_validation_error(self, validator):
        with pytest.raises(ValidationError) as exc:
            validator.clean(raw_record(age="150"))
        assert exc.value.reason == RejectionReason.INVALID_AGE

    def test_custom_date_window(self):
        validator = RecordValidator(min_date=datetime(2024, 6, 1), max_date=datetime(2024, 12, 31))
        outcome = validator.validate(raw_record(timestamp="2024-03-01"))
        assert outcome.reason == RejectionReason.INVALID_DATE


class TestValidateRecords:
    """Tests for the streaming validation stage"""

    def test_sample_file(self, sample_csv):
        rejections = Counter()
        valid = list(validate_records(parse_records(sample_csv), RecordValidator(), rejections))

        assert [r.transaction_id for r in valid] == [1, 2, 5]
        assert rejections == Counter({"missing_amount": 1, "invalid_age": 1})

    def test_summary_lists_every_reason(self):
        summary = summarize_rejections(Counter({"invalid_age": 2}))

        assert set(summary) == {reason.value for reason in RejectionReason}
        assert summary["invalid_age"] == 2
        assert summary["duplicate_id"] == 0
