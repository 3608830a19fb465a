"""
Database models
Exports every table model, read model and enum
"""

# Conversation domain
from .chat import ChatSession, ChatSessionRead, SessionStatus
from .message import ChatMessage, ChatMessageRead, SenderType

# Base model
from .base import TimestampModel, as_utc, utc_now

__all__ = [
    # Conversation domain
    "ChatSession", "ChatSessionRead", "SessionStatus",
    "ChatMessage", "ChatMessageRead", "SenderType",
    # Base model
    "TimestampModel", "as_utc", "utc_now"
]
