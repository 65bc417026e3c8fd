"""
Data Quality Module
"""
from .validators import (
    RecordValidator,
    Rejection,
    TransactionRecord,
    summarize_rejections,
    validate_records,
)

__all__ = [
    "RecordValidator",
    "Rejection",
    "TransactionRecord",
    "summarize_rejections",
    "validate_records",
]
