"""
Conversation domain - visitor chat sessions table
"""

from datetime import datetime
from typing import Optional
from enum import Enum

from pydantic import field_validator
from sqlmodel import Field, SQLModel

from .base import TimestampModel, as_utc, utc_now


class SessionStatus(str, Enum):
    """Session lifecycle gate - only active sessions accept visitor messages"""
    ACTIVE = "active"
    CLOSED = "closed"


class ChatSession(TimestampModel, table=True):
    """
    Visitor chat sessions table
    Container of one visitor conversation; owns its chat_messages
    """
    __tablename__ = "chat_sessions"

    # Primary key
    id: Optional[int] = Field(default=None, primary_key=True)

    # Capability token kept by the visitor's browser to reconnect
    # Never reissued: it is the only visitor-side credential for the conversation
    session_token: str = Field(unique=True, index=True, nullable=False)

    # Visitor identity, captured once by the identification form
    visitor_name: Optional[str] = Field(default=None)
    visitor_email: Optional[str] = Field(default=None)

    # Lifecycle status; filtered by the admin session list
    status: SessionStatus = Field(default=SessionStatus.ACTIVE, index=True, nullable=False)

    # Ordering key of the admin session list (newest activity first)
    last_message_at: Optional[datetime] = Field(default_factory=utc_now, index=True)


class ChatSessionRead(SQLModel):
    """Session as seen outside the persistence layer, with derived counters"""
    id: int
    session_token: str
    visitor_name: Optional[str] = None
    visitor_email: Optional[str] = None
    status: SessionStatus
    created_at: datetime
    updated_at: datetime
    last_message_at: Optional[datetime] = None

    # Visitor messages the admin has not read yet
    unread_count: int = 0
    message_count: int = 0

    @field_validator("created_at", "updated_at", "last_message_at")
    @classmethod
    def _ensure_utc(cls, value):
        return as_utc(value)

    @property
    def is_active(self) -> bool:
        return self.status == SessionStatus.ACTIVE

    @property
    def has_identity(self) -> bool:
        return bool(self.visitor_email)
