"""
Data Transformation Module
"""
from .cleaners import normalize_label, parse_amount, parse_age, parse_timestamp
from .resolvers import ResolutionCache, resolve_customer, resolve_dimension

__all__ = [
    "normalize_label",
    "parse_amount",
    "parse_age",
    "parse_timestamp",
    "ResolutionCache",
    "resolve_customer",
    "resolve_dimension",
]
