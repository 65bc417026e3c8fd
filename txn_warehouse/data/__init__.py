"""
Data Generation Module
"""
from .generators import HEADER, TransactionGenerator

__all__ = [
    "HEADER",
    "TransactionGenerator",
]
