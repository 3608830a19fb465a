"""
Admin chat core - session list + conversation view

AdminDashboard keeps the filtered session list fresh: it is recomputed from
the store on filter change, on any session-table change and on any message
insert, so unread counters are never patched incrementally.

AdminConversation is the selected conversation: history, read marking and
replies with the same optimistic discipline as the visitor widget
(temporary id -> replace on confirm -> remove on failure, dedup by id).
"""

import inspect
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional, Union

from livechat.config import Settings
from livechat.core.message_log import MessageLog
from livechat.errors import ChatError
from livechat.models.chat import ChatSessionRead, SessionStatus
from livechat.models.message import ChatMessageRead, SenderType
from livechat.realtime.events import ChangeEvent, ChangeKind
from livechat.realtime.hub import RealtimeHub, Subscription
from livechat.schemas import ChatStats
from livechat.services.chat_store import ChatStore

logger = logging.getLogger(__name__)

Confirm = Callable[[], Union[bool, Awaitable[bool]]]


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class SessionFilter(str, Enum):
    """Session list tabs"""
    ACTIVE = "active"
    CLOSED = "closed"
    ALL = "all"

    @property
    def status(self) -> Optional[SessionStatus]:
        return None if self is SessionFilter.ALL else SessionStatus(self.value)


class AdminConversation:
    """Selected conversation in the admin dashboard"""

    def __init__(
        self,
        store: ChatStore,
        hub: RealtimeHub,
        session: ChatSessionRead,
        admin_name: Optional[str] = None,
        on_change: Optional[Callable[[], Any]] = None
    ):
        """
        Args:
            store: chat store
            hub: realtime hub
            session: the conversation's session
            admin_name: display name stamped on replies
            on_change: called after read state changed (dashboard recount)
        """
        self.store = store
        self.hub = hub
        self.session = session
        self.admin_name = admin_name
        self.on_change = on_change

        self.log = MessageLog()
        self.is_loading = False
        self.is_sending = False
        self.error: Optional[str] = None
        self._subscription: Optional[Subscription] = None

    @property
    def session_id(self) -> int:
        return self.session.id

    @property
    def messages(self):
        return self.log.entries

    async def open(self) -> None:
        """
        Load history, mark visitor messages read, subscribe to inserts

        A load failure leaves an empty conversation with `error` set.
        """
        self.is_loading = True
        try:
            messages = await self.store.list_session_messages(self.session_id)
        except ChatError as e:
            logger.warning("[AdminConversation] Load of session %s failed: %s", self.session_id, e)
            self.error = str(e)
            messages = []
        finally:
            self.is_loading = False

        self.log.replace_all(messages)
        self._subscription = await self.hub.subscribe_messages(self.session_id, self._on_insert)
        await self._mark_read()

    async def close(self) -> None:
        if self._subscription is not None:
            subscription, self._subscription = self._subscription, None
            await subscription.close()

    async def __aenter__(self) -> "AdminConversation":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def reply(self, text: str) -> bool:
        """
        Send an admin reply with optimistic display

        Returns:
            True when the store confirmed the reply
        """
        content = (text or "").strip()
        if not content or self.is_sending:
            return False

        self.is_sending = True
        self.error = None
        pending = self.log.add_pending(
            SenderType.ADMIN,
            content,
            session_id=self.session_id,
            sender_name=self.admin_name
        )

        try:
            message = await self.store.append_message(
                self.session_id,
                SenderType.ADMIN,
                content,
                sender_name=self.admin_name
            )
        except ChatError as e:
            self.log.discard(pending.local_id)
            logger.warning("[AdminConversation] Reply to session %s failed: %s", self.session_id, e)
            self.error = str(e)
            return False
        finally:
            self.is_sending = False

        self.log.confirm(pending.local_id, message)
        return True

    async def _on_insert(self, message: ChatMessageRead) -> None:
        if not self.log.receive(message):
            return
        if message.sender_type == SenderType.VISITOR:
            await self._mark_read()

    async def _mark_read(self) -> None:
        try:
            changed = await self.store.mark_read(self.session_id, SenderType.ADMIN)
        except ChatError as e:
            logger.warning("[AdminConversation] mark_read of session %s failed: %s", self.session_id, e)
            return
        if changed:
            self.log.mark_read_by(SenderType.ADMIN)
            if self.on_change is not None:
                await _maybe_await(self.on_change())


class AdminDashboard:
    """
    Admin chat dashboard

    Usage:
        async with AdminDashboard(store, hub) as dashboard:
            await dashboard.set_filter("all")
            conversation = await dashboard.select(session_id)
            await conversation.reply("Thanks, I'll get back to you")
    """

    def __init__(
        self,
        store: ChatStore,
        hub: RealtimeHub,
        settings: Optional[Settings] = None,
        admin_name: Optional[str] = None
    ):
        self.store = store
        self.hub = hub
        self.settings = settings or store.settings
        self.admin_name = admin_name or self.settings.admin_display_name

        self.filter = SessionFilter.ACTIVE
        self.sessions: List[ChatSessionRead] = []
        self.stats = ChatStats()
        self.conversation: Optional[AdminConversation] = None
        self.error: Optional[str] = None

        self._subscriptions: List[Subscription] = []
        # Bumped per refresh; results of superseded refreshes are dropped
        self._generation = 0

    # ==================== View ====================

    @property
    def selected_session_id(self) -> Optional[int]:
        return self.conversation.session_id if self.conversation else None

    @property
    def selected_session(self) -> Optional[ChatSessionRead]:
        if self.conversation is None:
            return None
        for session in self.sessions:
            if session.id == self.conversation.session_id:
                return session
        return self.conversation.session

    @property
    def total_unread(self) -> int:
        return sum(session.unread_count for session in self.sessions)

    # ==================== Lifecycle ====================

    async def start(self) -> None:
        """Initial load + realtime subscriptions"""
        await self.refresh()
        self._subscriptions = [
            await self.hub.subscribe_sessions(self._on_session_change),
            await self.hub.subscribe_all_messages(self._on_message_insert),
        ]

    async def stop(self) -> None:
        await self._close_conversation()
        subscriptions, self._subscriptions = self._subscriptions, []
        for subscription in subscriptions:
            await subscription.close()

    async def __aenter__(self) -> "AdminDashboard":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    # ==================== Session list ====================

    async def refresh(self) -> bool:
        """
        Recompute the session list and stats from the store

        Returns:
            False when the load failed or a newer refresh superseded it
        """
        self._generation += 1
        generation = self._generation

        try:
            sessions = await self.store.list_sessions(
                status=self.filter.status,
                limit=self.settings.session_list_limit
            )
            stats = await self.store.get_stats()
        except ChatError as e:
            logger.warning("[AdminDashboard] Session list refresh failed: %s", e)
            if generation == self._generation:
                self.error = str(e)
            return False

        if generation != self._generation:
            return False

        self.sessions = sessions
        self.stats = stats
        self.error = None
        return True

    async def set_filter(self, session_filter: Union[SessionFilter, str]) -> None:
        self.filter = SessionFilter(session_filter)
        await self.refresh()

    async def _on_session_change(self, event: ChangeEvent) -> None:
        if event.kind == ChangeKind.DELETE and event.session_id == self.selected_session_id:
            await self._close_conversation()
        elif (
            event.kind == ChangeKind.UPDATE
            and self.conversation is not None
            and event.session_id == self.conversation.session_id
            and event.record is not None
        ):
            self.conversation.session = event.record
        await self.refresh()

    async def _on_message_insert(self, message: ChatMessageRead) -> None:
        await self.refresh()

    # ==================== Conversation ====================

    async def select(self, session_id: int) -> Optional[AdminConversation]:
        """
        Open a conversation (the previous one is torn down first)

        Opening marks the visitor's messages read, then counters are recomputed.
        """
        await self._close_conversation()

        session = next((s for s in self.sessions if s.id == session_id), None)
        if session is None:
            try:
                session = await self.store.get_session(session_id)
            except ChatError as e:
                self.error = str(e)
                return None
        if session is None:
            self.error = f"Chat session {session_id} not found"
            return None

        conversation = AdminConversation(
            self.store,
            self.hub,
            session,
            admin_name=self.admin_name,
            on_change=self.refresh
        )
        self.conversation = conversation
        await conversation.open()
        await self.refresh()
        return conversation

    async def deselect(self) -> None:
        await self._close_conversation()

    async def _close_conversation(self) -> None:
        if self.conversation is not None:
            conversation, self.conversation = self.conversation, None
            await conversation.close()

    # ==================== Session actions ====================

    async def close_session(self, session_id: int) -> bool:
        """
        Close a conversation (no further visitor messages)

        Returns:
            True on success; on failure `error` is set and the list is untouched
        """
        try:
            updated = await self.store.update_session_status(session_id, SessionStatus.CLOSED)
        except ChatError as e:
            logger.warning("[AdminDashboard] Closing session %s failed: %s", session_id, e)
            self.error = str(e)
            return False

        if self.conversation is not None and self.conversation.session_id == session_id:
            self.conversation.session = updated
        await self.refresh()
        return True

    async def delete_session(self, session_id: int, confirm: Confirm) -> bool:
        """
        Delete a conversation and all of its messages

        Args:
            session_id: session to delete
            confirm: asked before the destructive call; sync or async,
                a falsy answer cancels without touching the store

        Returns:
            True when the session was deleted
        """
        if not await _maybe_await(confirm()):
            return False

        try:
            await self.store.delete_session(session_id)
        except ChatError as e:
            logger.warning("[AdminDashboard] Deleting session %s failed: %s", session_id, e)
            self.error = str(e)
            return False

        if self.selected_session_id == session_id:
            await self._close_conversation()
        self.sessions = [s for s in self.sessions if s.id != session_id]
        await self.refresh()
        return True
