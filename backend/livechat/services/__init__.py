"""
Service layer
Business logic on top of the repositories
"""

from .chat_store import ChatStore
from .notifier import AdminNotifier

__all__ = [
    "ChatStore",
    "AdminNotifier"
]
