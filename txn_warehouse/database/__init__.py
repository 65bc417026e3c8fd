"""
Database Module
"""
from .connection import init_database, close_database, create_schema, get_db, get_engine
from .models import Base

__all__ = [
    "init_database",
    "close_database",
    "create_schema",
    "get_db",
    "get_engine",
    "Base",
]
