"""
Chat cores
Visitor widget and admin dashboard state machines
"""

from .message_log import (
    ConfirmedEntry,
    GreetingEntry,
    MessageLog,
    PendingEntry,
)
from .token_store import FileTokenStore, MemoryTokenStore, TokenStore
from .visitor import VisitorChat, WidgetState
from .admin import AdminConversation, AdminDashboard, SessionFilter

__all__ = [
    "ConfirmedEntry",
    "GreetingEntry",
    "MessageLog",
    "PendingEntry",
    "FileTokenStore",
    "MemoryTokenStore",
    "TokenStore",
    "VisitorChat",
    "WidgetState",
    "AdminConversation",
    "AdminDashboard",
    "SessionFilter"
]
