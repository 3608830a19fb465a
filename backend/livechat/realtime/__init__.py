"""
Realtime module
In-process pub/sub of committed session and message changes
"""

from .events import ChangeEvent, ChangeKind, MESSAGES_TABLE, SESSIONS_TABLE
from .hub import RealtimeHub, Subscription

__all__ = [
    "ChangeEvent",
    "ChangeKind",
    "MESSAGES_TABLE",
    "SESSIONS_TABLE",
    "RealtimeHub",
    "Subscription"
]
