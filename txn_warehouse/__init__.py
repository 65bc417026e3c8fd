"""
Transaction Warehouse

Loads raw retail transaction exports into a normalized store and keeps
pre-computed summary tables in step with it.
"""

__version__ = "1.0.0"
