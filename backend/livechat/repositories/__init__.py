"""
Repository (DAO) module
Database access layer wrapping the CRUD logic
"""

from .session_repository import SessionRepository

__all__ = [
    "SessionRepository"
]
