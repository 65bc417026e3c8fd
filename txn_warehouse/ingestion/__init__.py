"""
Data Ingestion Module

The loader and pipeline live in ``batch_loader`` and ``pipeline``; they are
not re-exported here because the validators import the parser from this
package.
"""
from .parser import FIELDS, RawRecord, iter_records, parse_records

__all__ = [
    "FIELDS",
    "RawRecord",
    "iter_records",
    "parse_records",
]
