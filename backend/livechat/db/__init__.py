"""
Database module
Engine creation and table initialisation
"""

from .init_db import init_db, get_engine, get_database_url, create_tables

__all__ = [
    "init_db",
    "get_engine",
    "get_database_url",
    "create_tables"
]
