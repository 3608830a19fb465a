"""
Conversation domain - chat messages table
Append-only: messages are never edited or deleted individually
"""

from datetime import datetime
from typing import Optional
from enum import Enum

from pydantic import field_validator
from sqlmodel import Field, SQLModel

from .base import TimestampModel, as_utc


class SenderType(str, Enum):
    """Message author role"""
    VISITOR = "visitor"
    ADMIN = "admin"


class ChatMessage(TimestampModel, table=True):
    """
    Chat messages table
    Ordered log of one session, created_at is assigned server-side
    """
    __tablename__ = "chat_messages"

    # Primary key
    id: Optional[int] = Field(default=None, primary_key=True)

    # Owning session; hot query path (load the whole conversation)
    session_id: int = Field(foreign_key="chat_sessions.id", index=True, nullable=False)

    # visitor or admin
    sender_type: SenderType = Field(nullable=False)

    # Admin display name (visitor messages leave it empty)
    sender_name: Optional[str] = Field(default=None)

    # Trimmed, non-empty text
    message: str = Field(nullable=False)

    # Read state as seen by the other party
    is_read: bool = Field(default=False, nullable=False)
    read_at: Optional[datetime] = Field(default=None)


class ChatMessageRead(SQLModel):
    """Confirmed message as seen outside the persistence layer"""
    id: int
    session_id: int
    sender_type: SenderType
    sender_name: Optional[str] = None
    message: str
    is_read: bool = False
    read_at: Optional[datetime] = None
    created_at: datetime

    @field_validator("created_at", "read_at")
    @classmethod
    def _ensure_utc(cls, value):
        return as_utc(value)
