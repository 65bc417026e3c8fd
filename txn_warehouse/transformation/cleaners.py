"""
Data Cleaning Module

Pure, row-level cleaning functions for raw transaction fields.
Handles:
- Categorical label normalization (whitespace and case variants)
- Missing-value tokens
- Currency amounts to fixed-point decimals
- Ages, timestamps, gender, marital status and referral flags

Every function either returns the cleaned value or raises ``ValueError``;
deciding which rejection reason applies is left to the validator.
"""

import re
from datetime import datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Optional

from txn_warehouse.database.models import Gender, MaritalStatus

# Tokens that mean "no value" in the raw export
MISSING_TOKENS = frozenset({"", "missing", "nan", "null", "none", "na", "n/a", "-", "?"})

UNKNOWN_LABEL = "unknown"

CENTS = Decimal("0.01")

# Storage limits: Numeric(14, 2) amounts, BIGINT ids, String(100) labels
MAX_AMOUNT = Decimal("999999999999.99")
MAX_TRANSACTION_ID = 2**63 - 1
MAX_LABEL_LENGTH = 100

_WHITESPACE = re.compile(r"\s+")
_CURRENCY = re.compile(r"[$€£¥,\s]")

DATETIME_FORMATS = [
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%d %H:%M:%S.%f",
    "%Y-%m-%d",
    "%m/%d/%Y %H:%M:%S",
    "%m/%d/%Y %H:%M",
    "%m/%d/%Y",
    "%d-%m-%Y %H:%M",
    "%d-%m-%Y",
    "%Y/%m/%d %H:%M:%S",
    "%Y/%m/%d",
]

_GENDERS = {
    "male": Gender.MALE,
    "m": Gender.MALE,
    "man": Gender.MALE,
    "female": Gender.FEMALE,
    "f": Gender.FEMALE,
    "woman": Gender.FEMALE,
}

_MARITAL_STATUSES = {
    "single": MaritalStatus.SINGLE,
    "s": MaritalStatus.SINGLE,
    "unmarried": MaritalStatus.SINGLE,
    "0": MaritalStatus.SINGLE,
    "married": MaritalStatus.MARRIED,
    "m": MaritalStatus.MARRIED,
    "1": MaritalStatus.MARRIED,
}

_TRUE_FLAGS = frozenset({"1", "true", "t", "yes", "y"})
_FALSE_FLAGS = frozenset({"0", "false", "f", "no", "n", ""})


def is_missing(value: Optional[str]) -> bool:
    """True for None and for empty/"Missing"/"NaN"-like tokens"""
    if value is None:
        return True
    return value.strip().casefold() in MISSING_TOKENS


def normalize_label(value: Optional[str]) -> str:
    """
    Canonical form of a free-text categorical value.

    Trims, collapses inner whitespace and case-folds, so " North  East",
    "north east" and "NORTH EAST" all map to "north east". Missing values
    map to "unknown".
    """
    if is_missing(value):
        return UNKNOWN_LABEL
    return _WHITESPACE.sub(" ", value.strip()).casefold()


def parse_amount(value: Optional[str]) -> Decimal:
    """
    Parse a currency amount to a 2-place decimal.

    Raises:
        ValueError: missing, unparsable, negative or oversized amount
    """
    if is_missing(value):
        raise ValueError("amount is missing")

    cleaned = _CURRENCY.sub("", value)
    try:
        amount = Decimal(cleaned)
    except InvalidOperation:
        raise ValueError(f"amount {value!r} is not a number") from None

    if not amount.is_finite():
        raise ValueError(f"amount {value!r} is not finite")
    if amount < 0:
        raise ValueError(f"amount {value!r} is negative")
    if amount > MAX_AMOUNT + CENTS:
        raise ValueError(f"amount {value!r} exceeds {MAX_AMOUNT}")

    amount = amount.quantize(CENTS, rounding=ROUND_HALF_UP)
    if amount > MAX_AMOUNT:
        raise ValueError(f"amount {value!r} exceeds {MAX_AMOUNT}")
    return amount


def parse_age(value: Optional[str], lower: int = 0, upper: int = 120) -> int:
    """
    Parse an age in years, accepting "34" and "34.0".

    Raises:
        ValueError: missing, non-integral or outside the open interval (lower, upper)
    """
    if is_missing(value):
        raise ValueError("age is missing")

    try:
        number = Decimal(value.strip())
    except InvalidOperation:
        raise ValueError(f"age {value!r} is not a number") from None

    if not number.is_finite():
        raise ValueError(f"age {value!r} is not a number")
    # Bounded on the Decimal so a huge exponent never reaches int()
    if not lower < number < upper:
        raise ValueError(f"age {value!r} outside ({lower}, {upper})")
    if number != number.to_integral_value():
        raise ValueError(f"age {value!r} is not a whole number")
    return int(number)


def parse_timestamp(
    value: Optional[str],
    min_date: Optional[datetime] = None,
    max_date: Optional[datetime] = None,
) -> datetime:
    """
    Parse a timestamp trying each known format in turn.

    Timezone-aware ISO values are converted to naive UTC.

    Raises:
        ValueError: missing, unparsable or outside [min_date, max_date)
    """
    if is_missing(value):
        raise ValueError("timestamp is missing")

    text_value = value.strip()
    parsed: Optional[datetime] = None

    for fmt in DATETIME_FORMATS:
        try:
            parsed = datetime.strptime(text_value, fmt)
            break
        except ValueError:
            continue

    if parsed is None:
        try:
            parsed = datetime.fromisoformat(text_value.replace("Z", "+00:00"))
        except ValueError:
            raise ValueError(f"timestamp {value!r} has no known format") from None
        if parsed.tzinfo is not None:
            parsed = _to_naive_utc(parsed)

    if min_date is not None and parsed < min_date:
        raise ValueError(f"timestamp {parsed.isoformat()} before {min_date.isoformat()}")
    if max_date is not None and parsed >= max_date:
        raise ValueError(f"timestamp {parsed.isoformat()} not before {max_date.isoformat()}")

    return parsed


def _to_naive_utc(value: datetime) -> datetime:
    offset = value.utcoffset()
    return (value - offset).replace(tzinfo=None) if offset else value.replace(tzinfo=None)


def parse_gender(value: Optional[str]) -> Gender:
    """Gender is optional: anything unrecognized becomes ``unknown``"""
    if is_missing(value):
        return Gender.UNKNOWN
    return _GENDERS.get(normalize_label(value), Gender.UNKNOWN)


def parse_marital_status(value: Optional[str]) -> MaritalStatus:
    """
    Raises:
        ValueError: missing or unrecognized marital status
    """
    if is_missing(value):
        raise ValueError("marital status is missing")
    status = _MARITAL_STATUSES.get(normalize_label(value))
    if status is None:
        raise ValueError(f"marital status {value!r} not recognized")
    return status


def parse_flag(value: Optional[str]) -> bool:
    """
    Parse a 0/1 style flag; an empty value means False.

    Raises:
        ValueError: unrecognized flag value
    """
    token = (value or "").strip().casefold()
    if token.endswith(".0"):
        token = token[:-2]
    if token in _TRUE_FLAGS:
        return True
    if token in _FALSE_FLAGS:
        return False
    raise ValueError(f"flag {value!r} not recognized")


def parse_transaction_id(value: Optional[str]) -> int:
    """
    Raises:
        ValueError: missing, non-integral or non-positive id
    """
    if is_missing(value):
        raise ValueError("transaction id is missing")
    transaction_id = int(value.strip())
    if not 0 < transaction_id <= MAX_TRANSACTION_ID:
        raise ValueError(f"transaction id {transaction_id} out of range")
    return transaction_id
