"""
Error Taxonomy

Exceptions raised by the load pipeline and the aggregate maintainer, plus
the fixed set of reasons a source row can be rejected for.

- ParseError: the row could not be decoded (skip, count)
- ValidationError: the row failed an integrity rule (skip, count)
- ConflictError: a uniqueness constraint fired inside a batch (fail the batch, count)
- StorageError: connectivity or transaction failure (retry once, then fatal)
"""

from enum import Enum
from typing import Optional


class RejectionReason(str, Enum):
    """Why a source row did not become a fact"""
    MISSING_AMOUNT = "missing_amount"
    INVALID_AGE = "invalid_age"
    INVALID_DATE = "invalid_date"
    MALFORMED_ROW = "malformed_row"
    DUPLICATE_ID = "duplicate_id"
    BATCH_CONFLICT = "batch_conflict"


class WarehouseError(Exception):
    """Base class for all pipeline errors"""


class ParseError(WarehouseError):
    """A raw line could not be decoded into the expected fields"""

    reason = RejectionReason.MALFORMED_ROW

    def __init__(self, message: str, line_number: Optional[int] = None):
        super().__init__(message)
        self.line_number = line_number


class ValidationError(WarehouseError):
    """A decoded row violates an integrity rule"""

    def __init__(self, reason: RejectionReason, message: str, line_number: Optional[int] = None):
        super().__init__(message)
        self.reason = reason
        self.line_number = line_number


class ConflictError(WarehouseError):
    """A duplicate key or other constraint violation inside a batch"""

    reason = RejectionReason.BATCH_CONFLICT

    def __init__(self, message: str, batch_number: Optional[int] = None, record_count: int = 0):
        super().__init__(message)
        self.batch_number = batch_number
        self.record_count = record_count


class StorageError(WarehouseError):
    """
    Connectivity or transaction failure.

    Carries the source line range of the batch that failed so an aborted run
    can be resumed from ``first_line``.
    """

    def __init__(
        self,
        message: str,
        batch_number: Optional[int] = None,
        first_line: Optional[int] = None,
        last_line: Optional[int] = None,
    ):
        super().__init__(message)
        self.batch_number = batch_number
        self.first_line = first_line
        self.last_line = last_line


class AggregateRefreshError(StorageError):
    """A refresh failed; the previous aggregate snapshot stays authoritative"""

    def __init__(self, message: str, aggregate: Optional[str] = None):
        super().__init__(message)
        self.aggregate = aggregate
