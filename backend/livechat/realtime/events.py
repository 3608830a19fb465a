"""
Realtime change events
Row-level change notifications published after every committed write
"""

from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel

from livechat.models.chat import ChatSessionRead
from livechat.models.message import ChatMessageRead


SESSIONS_TABLE = "chat_sessions"
MESSAGES_TABLE = "chat_messages"


class ChangeKind(str, Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class ChangeEvent(BaseModel):
    """
    One committed row change

    record is the new row state; None for deletes
    """
    table: str
    kind: ChangeKind
    session_id: int
    record: Optional[Union[ChatMessageRead, ChatSessionRead]] = None

    @classmethod
    def message_inserted(cls, message: ChatMessageRead) -> "ChangeEvent":
        return cls(
            table=MESSAGES_TABLE,
            kind=ChangeKind.INSERT,
            session_id=message.session_id,
            record=message
        )

    @classmethod
    def session_changed(
        cls,
        kind: ChangeKind,
        session_id: int,
        session: Optional[ChatSessionRead] = None
    ) -> "ChangeEvent":
        return cls(table=SESSIONS_TABLE, kind=kind, session_id=session_id, record=session)
