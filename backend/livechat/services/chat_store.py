"""
Chat store service

Async facade over SessionRepository used by the visitor widget and the
admin dashboard:
1. Session container: create-or-fetch by visitor token, list, close, delete
2. Message log: validated append, token-scoped history, read marking
3. Realtime fan-out: every committed write is published to the hub
4. Admin notification for visitor messages (fire and forget)

Repository work runs on one dedicated worker thread, so the event loop never
blocks on the database and writes commit in the order they were issued.
Writes additionally hold an asyncio lock across commit + publish, so hub
delivery order equals commit order.
"""

import asyncio
import logging
import uuid
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional, Set, Tuple, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from livechat.config import Settings, get_settings
from livechat.db.init_db import get_engine
from livechat.errors import (
    InvalidStatusTransitionError,
    SessionClosedError,
    SessionNotFoundError,
    StoreError,
)
from livechat.models.chat import ChatSession, ChatSessionRead, SessionStatus
from livechat.models.message import ChatMessageRead, SenderType
from livechat.realtime.events import ChangeEvent, ChangeKind
from livechat.realtime.hub import RealtimeHub
from livechat.repositories.session_repository import SessionRepository
from livechat.schemas import ChatStats, VisitorInfo, normalize_message_text
from livechat.services.notifier import AdminNotifier

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _to_session_read(repo: SessionRepository, chat_session: ChatSession) -> ChatSessionRead:
    """Convert a ChatSession row to its read model with counters"""
    unread = repo.get_unread_counts([chat_session.id]).get(chat_session.id, 0)
    total = repo.get_message_counts([chat_session.id]).get(chat_session.id, 0)
    return ChatSessionRead.model_validate(
        chat_session,
        update={"unread_count": unread, "message_count": total}
    )


class ChatStore:
    """
    Chat store

    Usage:
        store = ChatStore(engine=get_engine(), hub=RealtimeHub())
        session = await store.get_or_create_session(VisitorInfo.parse("Ada", "ada@example.com"))
        await store.append_visitor_message(session.session_token, "Hello")
    """

    def __init__(
        self,
        engine=None,
        hub: Optional[RealtimeHub] = None,
        settings: Optional[Settings] = None,
        notifier: Optional[AdminNotifier] = None
    ):
        """
        Args:
            engine: SQLAlchemy engine (defaults to the configured database)
            hub: realtime hub to publish to (a private one if omitted)
            settings: runtime settings (defaults to get_settings())
            notifier: admin notifier for visitor messages (optional)
        """
        self.engine = engine if engine is not None else get_engine()
        self.hub = hub or RealtimeHub()
        self.settings = settings or get_settings()
        self.notifier = notifier
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="livechat-store")
        self._write_lock = asyncio.Lock()
        self._background: Set[asyncio.Future] = set()

    # ==================== Plumbing ====================

    async def _run(self, operation: str, work: Callable[[SessionRepository], T]) -> T:
        """
        Run repository work on the store thread

        Raises:
            StoreError: database failure (the original error is chained)
            ChatError: domain errors raised by `work` pass through unchanged
        """
        def call():
            with Session(self.engine) as session:
                return work(SessionRepository(session))

        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(self._executor, call)
        except SQLAlchemyError as e:
            logger.error("[ChatStore] %s failed: %s", operation, e)
            raise StoreError(f"{operation} failed") from e

    def _new_token(self) -> str:
        return f"{self.settings.session_token_prefix}_{uuid.uuid4().hex}"

    # ==================== Sessions ====================

    async def get_or_create_session(
        self,
        visitor_info: Optional[VisitorInfo] = None,
        token: Optional[str] = None
    ) -> ChatSessionRead:
        """
        Get the caller's session or start a new one

        Idempotent for a valid token: an existing active session is returned
        (its visitor identity is filled in if it was still empty). Without a
        token, or with an unknown/closed one, a new session with a fresh
        token is created.

        Args:
            visitor_info: identification form payload
            token: token previously kept by the visitor (optional)

        Returns:
            ChatSessionRead
        """
        name = visitor_info.name if visitor_info else None
        email = visitor_info.email if visitor_info else None

        def work(repo: SessionRepository) -> Tuple[ChatSessionRead, Optional[ChangeKind]]:
            if token:
                existing = repo.get_session_by_token(token, active_only=True)
                if existing:
                    needs_identity = (
                        (not existing.visitor_name and name)
                        or (not existing.visitor_email and email)
                    )
                    if needs_identity:
                        existing = repo.update_visitor_info(existing.id, name, email)
                        return _to_session_read(repo, existing), ChangeKind.UPDATE
                    return _to_session_read(repo, existing), None

            created = repo.create_session(self._new_token(), name, email)
            logger.info("[ChatStore] New chat session created (ID: %s)", created.id)
            return _to_session_read(repo, created), ChangeKind.INSERT

        async with self._write_lock:
            chat_session, change = await self._run("get_or_create_session", work)
            if change is not None:
                self.hub.publish(ChangeEvent.session_changed(change, chat_session.id, chat_session))
        return chat_session

    async def get_session_by_token(self, token: Optional[str]) -> Optional[ChatSessionRead]:
        """
        Resolve a visitor token

        Returns:
            The active session, or None for a blank, unknown or closed token
            (the widget treats None as "start fresh", never as an error)
        """
        if not token:
            return None

        def work(repo: SessionRepository) -> Optional[ChatSessionRead]:
            chat_session = repo.get_session_by_token(token, active_only=True)
            return _to_session_read(repo, chat_session) if chat_session else None

        return await self._run("get_session_by_token", work)

    async def get_session(self, session_id: int) -> Optional[ChatSessionRead]:
        def work(repo: SessionRepository) -> Optional[ChatSessionRead]:
            chat_session = repo.get_session_by_id(session_id)
            return _to_session_read(repo, chat_session) if chat_session else None

        return await self._run("get_session", work)

    async def list_sessions(
        self,
        status: Optional[SessionStatus] = None,
        limit: Optional[int] = None,
        offset: int = 0
    ) -> List[ChatSessionRead]:
        """
        Admin session list, newest activity first, with unread counters

        Args:
            status: status filter (None = all)
            limit: page size (defaults to settings.session_list_limit)
            offset: rows to skip
        """
        limit = limit or self.settings.session_list_limit

        def work(repo: SessionRepository) -> List[ChatSessionRead]:
            sessions = repo.list_sessions(status=status, limit=limit, offset=offset)
            ids = [s.id for s in sessions]
            unread = repo.get_unread_counts(ids)
            totals = repo.get_message_counts(ids)
            return [
                ChatSessionRead.model_validate(
                    s,
                    update={"unread_count": unread.get(s.id, 0), "message_count": totals.get(s.id, 0)}
                )
                for s in sessions
            ]

        return await self._run("list_sessions", work)

    async def update_session_status(self, session_id: int, status: SessionStatus) -> ChatSessionRead:
        """
        Change the session status

        Raises:
            SessionNotFoundError: unknown session
            InvalidStatusTransitionError: closed sessions cannot be reopened
        """
        status = SessionStatus(status)

        def work(repo: SessionRepository) -> ChatSessionRead:
            chat_session = repo.get_session_by_id(session_id)
            if chat_session is None:
                raise SessionNotFoundError(f"Chat session {session_id} not found")
            if chat_session.status == SessionStatus.CLOSED and status == SessionStatus.ACTIVE:
                raise InvalidStatusTransitionError(
                    "reopen_not_supported",
                    "Closed conversations cannot be reopened"
                )
            updated = repo.update_session_status(session_id, status)
            return _to_session_read(repo, updated)

        async with self._write_lock:
            chat_session = await self._run("update_session_status", work)
            self.hub.publish(ChangeEvent.session_changed(ChangeKind.UPDATE, session_id, chat_session))
        logger.info("[ChatStore] Session %s -> %s", session_id, status.value)
        return chat_session

    async def delete_session(self, session_id: int) -> None:
        """
        Delete a session and all of its messages

        Raises:
            SessionNotFoundError: unknown session
        """
        def work(repo: SessionRepository) -> None:
            if not repo.delete_session(session_id):
                raise SessionNotFoundError(f"Chat session {session_id} not found")

        async with self._write_lock:
            await self._run("delete_session", work)
            self.hub.publish(ChangeEvent.session_changed(ChangeKind.DELETE, session_id))
        logger.info("[ChatStore] Session %s deleted", session_id)

    # ==================== Messages ====================

    async def append_message(
        self,
        session_id: int,
        sender_type: SenderType,
        text: str,
        sender_name: Optional[str] = None
    ) -> ChatMessageRead:
        """
        Append a message to a session by ID

        Raises:
            MessageValidationError: empty or oversized text
            SessionNotFoundError: unknown session
            SessionClosedError: visitor message into a closed session
        """
        return await self._append(
            lambda repo: repo.get_session_by_id(session_id),
            SenderType(sender_type),
            text,
            sender_name
        )

    async def append_visitor_message(self, token: str, text: str) -> ChatMessageRead:
        """
        Append a visitor message, scoped by the visitor's token

        Raises:
            MessageValidationError: empty or oversized text
            SessionNotFoundError: unknown token
            SessionClosedError: the admin closed the conversation
        """
        return await self._append(
            lambda repo: repo.get_session_by_token(token) if token else None,
            SenderType.VISITOR,
            text
        )

    async def _append(
        self,
        locate: Callable[[SessionRepository], Optional[ChatSession]],
        sender_type: SenderType,
        text: str,
        sender_name: Optional[str] = None
    ) -> ChatMessageRead:
        content = normalize_message_text(text, self.settings.max_message_length)

        def work(repo: SessionRepository):
            chat_session = locate(repo)
            if chat_session is None:
                raise SessionNotFoundError("Chat session not found or expired")
            if sender_type == SenderType.VISITOR and chat_session.status != SessionStatus.ACTIVE:
                raise SessionClosedError("This conversation has been closed")

            visitor = (chat_session.visitor_name, chat_session.visitor_email)
            message = repo.create_message(
                session_id=chat_session.id,
                sender_type=sender_type,
                content=content,
                sender_name=sender_name
            )
            return ChatMessageRead.model_validate(message), visitor

        async with self._write_lock:
            message, visitor = await self._run("append_message", work)
            self.hub.publish(ChangeEvent.message_inserted(message))

        if sender_type == SenderType.VISITOR:
            self._notify_admin(message, *visitor)
        return message

    async def list_messages(self, token: Optional[str]) -> List[ChatMessageRead]:
        """
        Visitor-side history, scoped by token

        Never leaks across sessions: only the session owning `token` is read.

        Returns:
            Messages in creation order; [] for an unknown token
        """
        if not token:
            return []

        def work(repo: SessionRepository) -> List[ChatMessageRead]:
            chat_session = repo.get_session_by_token(token)
            if chat_session is None:
                return []
            return [ChatMessageRead.model_validate(m) for m in repo.get_messages_by_session_id(chat_session.id)]

        return await self._run("list_messages", work)

    async def list_session_messages(self, session_id: int) -> List[ChatMessageRead]:
        """Admin-side history of one session, in creation order"""
        def work(repo: SessionRepository) -> List[ChatMessageRead]:
            if repo.get_session_by_id(session_id) is None:
                raise SessionNotFoundError(f"Chat session {session_id} not found")
            return [ChatMessageRead.model_validate(m) for m in repo.get_messages_by_session_id(session_id)]

        return await self._run("list_session_messages", work)

    async def mark_read(self, session_id: int, reader: SenderType) -> int:
        """
        Mark every message not authored by `reader` as read (idempotent)

        Returns:
            Number of messages changed
        """
        reader = SenderType(reader)
        async with self._write_lock:
            return await self._run("mark_read", lambda repo: repo.mark_read(session_id, reader))

    async def get_stats(self) -> ChatStats:
        def work(repo: SessionRepository) -> ChatStats:
            return ChatStats(
                active_sessions=repo.count_sessions(SessionStatus.ACTIVE),
                closed_sessions=repo.count_sessions(SessionStatus.CLOSED),
                total_messages=repo.count_messages(),
                unread_messages=repo.count_messages(SenderType.VISITOR, unread_only=True),
            )

        return await self._run("get_stats", work)

    # ==================== Notification ====================

    def _notify_admin(self, message: ChatMessageRead, visitor_name, visitor_email) -> None:
        if self.notifier is None or not self.notifier.enabled:
            return
        loop = asyncio.get_running_loop()
        future = loop.run_in_executor(
            None,
            self.notifier.notify,
            message.session_id,
            message.message,
            visitor_name,
            visitor_email
        )
        self._background.add(future)
        future.add_done_callback(self._background_done)

    def _background_done(self, future: asyncio.Future) -> None:
        self._background.discard(future)
        if not future.cancelled() and future.exception() is not None:
            logger.error("[ChatStore] Admin notification crashed: %r", future.exception())

    async def wait_background(self) -> None:
        """Wait for pending admin notifications"""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    # ==================== Lifecycle ====================

    async def close(self) -> None:
        await self.wait_background()
        self._executor.shutdown(wait=True)

    async def __aenter__(self) -> "ChatStore":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
