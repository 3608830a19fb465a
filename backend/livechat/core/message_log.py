"""
Client-side visible message log

Tentative entries with server confirmation and id remapping:
a send appends a PendingEntry under a temporary id, which is then either
replaced in place by the ConfirmedEntry (success) or removed (failure).
Realtime inserts are de-duplicated by id equality only.
"""

import uuid
from datetime import datetime
from typing import Iterable, Iterator, List, Literal, Optional, Union

from pydantic import BaseModel, Field

from livechat.models.base import utc_now
from livechat.models.message import ChatMessageRead, SenderType


TEMP_ID_PREFIX = "temp-"


def new_temp_id() -> str:
    return f"{TEMP_ID_PREFIX}{uuid.uuid4().hex}"


class PendingEntry(BaseModel):
    """Optimistic message not yet confirmed by the store"""
    kind: Literal["pending"] = "pending"
    local_id: str = Field(default_factory=new_temp_id)
    session_id: Optional[int] = None
    sender_type: SenderType
    sender_name: Optional[str] = None
    message: str
    created_at: datetime = Field(default_factory=utc_now)
    is_read: bool = False

    @property
    def id(self) -> str:
        return self.local_id

    @property
    def pending(self) -> bool:
        return True


class ConfirmedEntry(BaseModel):
    """Message confirmed by the store (real id, authoritative timestamp)"""
    kind: Literal["confirmed"] = "confirmed"
    record: ChatMessageRead

    @property
    def id(self) -> int:
        return self.record.id

    @property
    def sender_type(self) -> SenderType:
        return self.record.sender_type

    @property
    def sender_name(self) -> Optional[str]:
        return self.record.sender_name

    @property
    def message(self) -> str:
        return self.record.message

    @property
    def created_at(self) -> datetime:
        return self.record.created_at

    @property
    def is_read(self) -> bool:
        return self.record.is_read

    @property
    def pending(self) -> bool:
        return False


class GreetingEntry(BaseModel):
    """Static welcome bubble, rendered client-side only and never persisted"""
    kind: Literal["greeting"] = "greeting"
    id: str = "greeting"
    sender_type: SenderType = SenderType.ADMIN
    sender_name: Optional[str] = None
    message: str
    created_at: datetime = Field(default_factory=utc_now)
    is_read: bool = True

    @property
    def pending(self) -> bool:
        return False


LogEntry = Union[PendingEntry, ConfirmedEntry]
DisplayEntry = Union[GreetingEntry, PendingEntry, ConfirmedEntry]


class MessageLog:
    """
    Ordered visible log of one conversation

    Order is the historical load followed by local sends and realtime
    inserts in the order this client saw them.
    """

    def __init__(self, messages: Iterable[ChatMessageRead] = ()):
        self._entries: List[LogEntry] = []
        self.replace_all(messages)

    # ==================== Read ====================

    @property
    def entries(self) -> List[LogEntry]:
        return list(self._entries)

    @property
    def ids(self) -> List[Union[int, str]]:
        return [entry.id for entry in self._entries]

    @property
    def pending(self) -> List[PendingEntry]:
        return [entry for entry in self._entries if isinstance(entry, PendingEntry)]

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[LogEntry]:
        return iter(list(self._entries))

    def __contains__(self, entry_id) -> bool:
        return self._index_of(entry_id) is not None

    def get(self, entry_id) -> Optional[LogEntry]:
        index = self._index_of(entry_id)
        return self._entries[index] if index is not None else None

    # ==================== Write ====================

    def replace_all(self, messages: Iterable[ChatMessageRead]) -> None:
        """Reset the log to a historical load (duplicates collapsed)"""
        self._entries = []
        for message in messages:
            self.receive(message)

    def add_pending(
        self,
        sender_type: SenderType,
        text: str,
        session_id: Optional[int] = None,
        sender_name: Optional[str] = None
    ) -> PendingEntry:
        """Append an optimistic entry and return it (its local_id is the temporary id)"""
        entry = PendingEntry(
            session_id=session_id,
            sender_type=sender_type,
            sender_name=sender_name,
            message=text,
            # Visitor-side view of admin replies and vice versa start unread
            is_read=False
        )
        self._entries.append(entry)
        return entry

    def confirm(self, local_id: str, message: ChatMessageRead) -> bool:
        """
        Swap a pending entry for the confirmed message

        If the realtime echo of this message already landed in the log, the
        pending entry is dropped instead, so exactly one entry remains.

        Returns:
            False when no pending entry has this local_id
        """
        index = self._index_of(local_id)
        if index is None:
            return False
        if message.id in self:
            del self._entries[index]
        else:
            self._entries[index] = ConfirmedEntry(record=message)
        return True

    def discard(self, local_id: str) -> bool:
        """Roll back a failed send; returns False when nothing was removed"""
        index = self._index_of(local_id)
        if index is None:
            return False
        del self._entries[index]
        return True

    def receive(self, message: ChatMessageRead) -> bool:
        """
        Append a message delivered by history load or realtime

        Returns:
            False when an entry with the same id is already shown
        """
        if message.id in self:
            return False
        self._entries.append(ConfirmedEntry(record=message))
        return True

    def mark_read_by(self, reader: SenderType) -> int:
        """Flag confirmed entries not authored by `reader` as read (mirrors the store)"""
        changed = 0
        for index, entry in enumerate(self._entries):
            if isinstance(entry, ConfirmedEntry) and entry.sender_type != reader and not entry.is_read:
                record = entry.record.model_copy(update={"is_read": True})
                self._entries[index] = ConfirmedEntry(record=record)
                changed += 1
        return changed

    def _index_of(self, entry_id) -> Optional[int]:
        for index, entry in enumerate(self._entries):
            if entry.id == entry_id:
                return index
        return None
