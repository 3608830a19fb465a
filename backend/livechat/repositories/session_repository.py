"""
Session management Repository
CRUD for chat_sessions and chat_messages
"""

from datetime import timedelta
from typing import Dict, Iterable, List, Optional

from sqlalchemy import func
from sqlmodel import Session, select, col

from livechat.models.base import as_utc, utc_now
from livechat.models.chat import ChatSession, SessionStatus
from livechat.models.message import ChatMessage, SenderType


class SessionRepository:
    """
    Session data access object
    Wraps every database operation on chat_sessions and chat_messages
    """

    def __init__(self, session: Session):
        """
        Initialise the Repository

        Args:
            session: SQLModel database session
        """
        self.session = session

    # ==================== ChatSession operations ====================

    def create_session(
        self,
        session_token: str,
        visitor_name: Optional[str] = None,
        visitor_email: Optional[str] = None
    ) -> ChatSession:
        """
        Create a new active session

        Args:
            session_token: visitor capability token (unique)
            visitor_name: visitor name (optional)
            visitor_email: visitor email (optional)

        Returns:
            The created ChatSession
        """
        chat_session = ChatSession(
            session_token=session_token,
            visitor_name=visitor_name,
            visitor_email=visitor_email,
            status=SessionStatus.ACTIVE
        )
        self.session.add(chat_session)
        self.session.commit()
        self.session.refresh(chat_session)
        return chat_session

    def get_session_by_id(self, session_id: int) -> Optional[ChatSession]:
        """
        Get a session by ID

        Returns:
            ChatSession, or None if it does not exist
        """
        return self.session.get(ChatSession, session_id)

    def get_session_by_token(
        self,
        session_token: str,
        active_only: bool = False
    ) -> Optional[ChatSession]:
        """
        Get a session by its visitor token

        Args:
            session_token: visitor capability token
            active_only: ignore closed sessions

        Returns:
            ChatSession, or None if it does not exist
        """
        statement = select(ChatSession).where(ChatSession.session_token == session_token)
        if active_only:
            statement = statement.where(ChatSession.status == SessionStatus.ACTIVE)
        return self.session.exec(statement).first()

    def list_sessions(
        self,
        status: Optional[SessionStatus] = None,
        limit: Optional[int] = None,
        offset: int = 0
    ) -> List[ChatSession]:
        """
        List sessions, newest activity first

        Args:
            status: status filter (None = all)
            limit: page size (optional)
            offset: rows to skip

        Returns:
            ChatSession list ordered by last_message_at desc
        """
        statement = select(ChatSession).order_by(
            col(ChatSession.last_message_at).desc(),
            col(ChatSession.id).desc()
        )

        if status is not None:
            statement = statement.where(ChatSession.status == status)
        if offset:
            statement = statement.offset(offset)
        if limit:
            statement = statement.limit(limit)

        return list(self.session.exec(statement).all())

    def count_sessions(self, status: Optional[SessionStatus] = None) -> int:
        statement = select(func.count(ChatSession.id))
        if status is not None:
            statement = statement.where(ChatSession.status == status)
        return self.session.exec(statement).one()

    def update_visitor_info(
        self,
        session_id: int,
        visitor_name: Optional[str],
        visitor_email: Optional[str]
    ) -> Optional[ChatSession]:
        """
        Fill in the visitor identity

        Identity is captured once: fields that already hold a value are kept.

        Returns:
            The updated ChatSession, or None if it does not exist
        """
        chat_session = self.get_session_by_id(session_id)
        if chat_session:
            if not chat_session.visitor_name and visitor_name:
                chat_session.visitor_name = visitor_name
            if not chat_session.visitor_email and visitor_email:
                chat_session.visitor_email = visitor_email
            self.session.add(chat_session)
            self.session.commit()
            self.session.refresh(chat_session)
        return chat_session

    def update_session_status(
        self,
        session_id: int,
        status: SessionStatus
    ) -> Optional[ChatSession]:
        """
        Update the session status

        Returns:
            The updated ChatSession, or None if it does not exist
        """
        chat_session = self.get_session_by_id(session_id)
        if chat_session:
            chat_session.status = status
            self.session.add(chat_session)
            self.session.commit()
            self.session.refresh(chat_session)
        return chat_session

    def delete_session(self, session_id: int) -> bool:
        """
        Delete a session (cascades to its messages)

        Returns:
            True on success, False if the session does not exist
        """
        chat_session = self.get_session_by_id(session_id)
        if chat_session:
            # Messages first, then the session, in one commit
            self._delete_messages_by_session_id(session_id)
            self.session.delete(chat_session)
            self.session.commit()
            return True
        return False

    # ==================== ChatMessage operations ====================

    def create_message(
        self,
        session_id: int,
        sender_type: SenderType,
        content: str,
        sender_name: Optional[str] = None,
        is_read: bool = False
    ) -> ChatMessage:
        """
        Append a message to a session

        created_at is assigned here and is strictly greater than every
        created_at already stored for the session, so history order is
        stable even when two senders write within the same clock tick.
        The owning session's last_message_at is touched in the same commit.

        Args:
            session_id: session ID
            sender_type: visitor / admin
            content: message text (already validated)
            sender_name: admin display name (optional)
            is_read: initial read flag

        Returns:
            The created ChatMessage
        """
        created_at = utc_now()
        latest = self._latest_message_time(session_id)
        if latest is not None and created_at <= latest:
            created_at = latest + timedelta(microseconds=1)

        message = ChatMessage(
            session_id=session_id,
            sender_type=sender_type,
            sender_name=sender_name,
            message=content,
            is_read=is_read,
            created_at=created_at,
            updated_at=created_at
        )
        self.session.add(message)

        chat_session = self.get_session_by_id(session_id)
        if chat_session:
            chat_session.last_message_at = created_at
            chat_session.updated_at = created_at
            self.session.add(chat_session)

        self.session.commit()
        self.session.refresh(message)
        return message

    def get_message_by_id(self, message_id: int) -> Optional[ChatMessage]:
        return self.session.get(ChatMessage, message_id)

    def get_messages_by_session_id(
        self,
        session_id: int,
        limit: Optional[int] = None
    ) -> List[ChatMessage]:
        """
        Get all messages of a session (oldest first)

        Args:
            session_id: session ID
            limit: maximum number of rows (optional)

        Returns:
            ChatMessage list ordered by created_at asc
        """
        statement = select(ChatMessage).where(
            ChatMessage.session_id == session_id
        ).order_by(col(ChatMessage.created_at).asc(), col(ChatMessage.id).asc())

        if limit:
            statement = statement.limit(limit)

        return list(self.session.exec(statement).all())

    def mark_read(self, session_id: int, reader: SenderType) -> int:
        """
        Mark every unread message not authored by `reader` as read

        Idempotent: a second call finds nothing left to update.

        Returns:
            Number of messages changed
        """
        statement = select(ChatMessage).where(
            ChatMessage.session_id == session_id,
            ChatMessage.sender_type != reader,
            col(ChatMessage.is_read).is_(False)
        )
        messages = self.session.exec(statement).all()
        if not messages:
            return 0

        now = utc_now()
        for message in messages:
            message.is_read = True
            message.read_at = now
            self.session.add(message)
        self.session.commit()
        return len(messages)

    def get_unread_counts(self, session_ids: Iterable[int]) -> Dict[int, int]:
        """
        Unread visitor messages per session (what the admin has not seen)

        Returns:
            {session_id: count}; sessions without unread messages are omitted
        """
        ids = list(session_ids)
        if not ids:
            return {}
        statement = select(ChatMessage.session_id, func.count(ChatMessage.id)).where(
            col(ChatMessage.session_id).in_(ids),
            ChatMessage.sender_type == SenderType.VISITOR,
            col(ChatMessage.is_read).is_(False)
        ).group_by(ChatMessage.session_id)
        return {session_id: count for session_id, count in self.session.exec(statement).all()}

    def get_message_counts(self, session_ids: Iterable[int]) -> Dict[int, int]:
        ids = list(session_ids)
        if not ids:
            return {}
        statement = select(ChatMessage.session_id, func.count(ChatMessage.id)).where(
            col(ChatMessage.session_id).in_(ids)
        ).group_by(ChatMessage.session_id)
        return {session_id: count for session_id, count in self.session.exec(statement).all()}

    def count_messages(
        self,
        sender_type: Optional[SenderType] = None,
        unread_only: bool = False
    ) -> int:
        statement = select(func.count(ChatMessage.id))
        if sender_type is not None:
            statement = statement.where(ChatMessage.sender_type == sender_type)
        if unread_only:
            statement = statement.where(col(ChatMessage.is_read).is_(False))
        return self.session.exec(statement).one()

    def _latest_message_time(self, session_id: int):
        statement = select(func.max(ChatMessage.created_at)).where(
            ChatMessage.session_id == session_id
        )
        return as_utc(self.session.exec(statement).one())

    def _delete_messages_by_session_id(self, session_id: int) -> int:
        """
        Delete every message of a session (internal)

        Returns:
            Number of deleted messages
        """
        statement = select(ChatMessage).where(ChatMessage.session_id == session_id)
        messages = self.session.exec(statement).all()
        count = len(messages)
        for message in messages:
            self.session.delete(message)
        return count
