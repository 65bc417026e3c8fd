"""
Record Validation Module

Row-level integrity checks between the parser and the batch loader.
Each RawRecord becomes either a typed TransactionRecord or a Rejection
carrying exactly one reason. Checks run in a fixed order and the first
failure wins:

1. malformed_row  - wrong field count, bad transaction id, marital status,
                    referral flag or an oversized label
2. missing_amount - absent, unparsable or negative amount
3. invalid_age    - absent or outside (0, 120)
4. invalid_date   - unparsable or outside the accepted window
"""

from collections import Counter
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Dict, Iterable, Iterator, Optional, Tuple, Union

import structlog

from txn_warehouse.config import get_settings
from txn_warehouse.database.models import Gender, MaritalStatus
from txn_warehouse.errors import ParseError, RejectionReason, ValidationError
from txn_warehouse.ingestion.parser import RawRecord
from txn_warehouse.transformation import cleaners

logger = structlog.get_logger(__name__)

LABEL_FIELDS = ("region", "tier", "employment_status", "payment_method")


@dataclass(frozen=True)
class TransactionRecord:
    """A cleaned, typed source row ready to be resolved and loaded"""
    transaction_id: int
    occurred_at: datetime
    gender: Gender
    age: int
    marital_status: MaritalStatus
    region: str
    tier: str
    employment_status: str
    payment_method: str
    is_referral: bool
    amount: Decimal
    line_number: int = 0

    @property
    def demographics(self) -> Tuple[Gender, int, MaritalStatus]:
        """Structural customer identity"""
        return (self.gender, self.age, self.marital_status)


@dataclass(frozen=True)
class Rejection:
    """A source row that will not become a fact"""
    line_number: int
    reason: RejectionReason
    message: str


ValidationOutcome = Union[TransactionRecord, Rejection]


class RecordValidator:
    """
    Clean and validate raw transaction rows.

    Stateless: the same RawRecord always yields the same outcome.

    Example:
        validator = RecordValidator()
        outcome = validator.validate(raw)
        if isinstance(outcome, Rejection):
            ...
    """

    def __init__(
        self,
        min_date: Optional[datetime] = None,
        max_date: Optional[datetime] = None,
        min_age: int = 0,
        max_age: int = 120,
    ):
        etl = get_settings().etl
        self.min_date = min_date or etl.min_date
        self.max_date = max_date or etl.max_date
        self.min_age = min_age
        self.max_age = max_age

    def clean(self, raw: RawRecord) -> TransactionRecord:
        """
        Convert a RawRecord into a TransactionRecord.

        Raises:
            ParseError: the row is malformed
            ValidationError: the row breaks an integrity rule
        """
        if raw.malformed:
            raise ParseError(raw.error or "malformed row", raw.line_number)

        fields = raw.fields
        try:
            transaction_id = cleaners.parse_transaction_id(fields.get("transaction_id"))
            marital_status = cleaners.parse_marital_status(fields.get("marital_status"))
            is_referral = cleaners.parse_flag(fields.get("is_referral"))
        except ValueError as e:
            raise ParseError(str(e), raw.line_number) from None

        labels = {name: cleaners.normalize_label(fields.get(name)) for name in LABEL_FIELDS}
        for name, label in labels.items():
            if len(label) > cleaners.MAX_LABEL_LENGTH:
                raise ParseError(f"{name} longer than {cleaners.MAX_LABEL_LENGTH} characters", raw.line_number)

        try:
            amount = cleaners.parse_amount(fields.get("amount"))
        except ValueError as e:
            raise ValidationError(RejectionReason.MISSING_AMOUNT, str(e), raw.line_number) from None

        try:
            age = cleaners.parse_age(fields.get("age"), self.min_age, self.max_age)
        except ValueError as e:
            raise ValidationError(RejectionReason.INVALID_AGE, str(e), raw.line_number) from None

        try:
            occurred_at = cleaners.parse_timestamp(fields.get("timestamp"), self.min_date, self.max_date)
        except ValueError as e:
            raise ValidationError(RejectionReason.INVALID_DATE, str(e), raw.line_number) from None

        return TransactionRecord(
            transaction_id=transaction_id,
            occurred_at=occurred_at,
            gender=cleaners.parse_gender(fields.get("gender")),
            age=age,
            marital_status=marital_status,
            is_referral=is_referral,
            amount=amount,
            **labels,
            line_number=raw.line_number,
        )

    def validate(self, raw: RawRecord) -> ValidationOutcome:
        """Return the cleaned record, or a Rejection naming the first failed rule"""
        try:
            return self.clean(raw)
        except (ParseError, ValidationError) as e:
            return Rejection(line_number=raw.line_number, reason=e.reason, message=str(e))


def validate_records(
    records: Iterable[RawRecord],
    validator: RecordValidator,
    rejections: Counter,
) -> Iterator[TransactionRecord]:
    """
    Stream valid records, tallying every rejection by reason.

    Args:
        records: Parsed raw records
        validator: Validator to apply
        rejections: Counter updated in place, keyed by RejectionReason value
    """
    for raw in records:
        outcome = validator.validate(raw)
        if isinstance(outcome, Rejection):
            rejections[outcome.reason.value] += 1
            logger.debug(
                "Row rejected",
                line=outcome.line_number,
                reason=outcome.reason.value,
                message=outcome.message,
            )
            continue
        yield outcome


def summarize_rejections(rejections: Counter) -> Dict[str, int]:
    """Rejection counts for every known reason, zeros included"""
    return {reason.value: rejections.get(reason.value, 0) for reason in RejectionReason}
