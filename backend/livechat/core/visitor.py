"""
Visitor chat core - the widget state machine

States:
    LOADING -> NO_SESSION             no (valid) stored token
    LOADING -> NEEDS_IDENTIFICATION   session exists but no email on file
    LOADING -> ACTIVE                 history loaded, realtime subscribed
    NO_SESSION / NEEDS_IDENTIFICATION -> ACTIVE   identification form accepted

Every store call is tried once; failures are surfaced through `error` /
`notice` and never raised to the caller.
"""

import logging
from enum import Enum
from typing import List, Optional

from livechat.config import Settings, get_settings
from livechat.core.message_log import DisplayEntry, GreetingEntry, MessageLog
from livechat.core.token_store import MemoryTokenStore, TokenStore
from livechat.errors import ChatError, ChatValidationError, SessionClosedError
from livechat.models.chat import ChatSessionRead
from livechat.models.message import ChatMessageRead, SenderType
from livechat.realtime.hub import RealtimeHub, Subscription
from livechat.schemas import VisitorInfo, check_visitor_info
from livechat.services.chat_store import ChatStore

logger = logging.getLogger(__name__)


class WidgetState(str, Enum):
    LOADING = "loading"
    NO_SESSION = "no_session"
    NEEDS_IDENTIFICATION = "needs_identification"
    ACTIVE = "active"


class VisitorChat:
    """
    Visitor chat widget

    Usage:
        async with VisitorChat(store, hub, token_store, locale="fa") as chat:
            await chat.mount()
            await chat.identify("Ada", "ada@example.com")
            await chat.send("Hello")
    """

    def __init__(
        self,
        store: ChatStore,
        hub: RealtimeHub,
        token_store: Optional[TokenStore] = None,
        locale: Optional[str] = None,
        settings: Optional[Settings] = None
    ):
        """
        Args:
            store: chat store
            hub: realtime hub
            token_store: where the session token survives reloads
            locale: UI language ("en" / "fa"), passed explicitly
            settings: runtime settings (texts, limits)
        """
        self.store = store
        self.hub = hub
        self.token_store = token_store or MemoryTokenStore()
        self.settings = settings or store.settings or get_settings()
        self.locale = locale or self.settings.default_locale

        self.state = WidgetState.LOADING
        self.session: Optional[ChatSessionRead] = None
        self.log = MessageLog()
        self.is_sending = False
        self.error: Optional[str] = None
        self.error_code: Optional[str] = None
        self.notice: Optional[str] = None
        self.opened = True
        self.has_new_message = False

        self._subscription: Optional[Subscription] = None

    # ==================== View ====================

    @property
    def greeting(self) -> GreetingEntry:
        created_at = self.session.created_at if self.session else None
        entry = GreetingEntry(message=self.settings.text("greeting", self.locale))
        if created_at is not None:
            entry = entry.model_copy(update={"created_at": created_at})
        return entry

    @property
    def visible_messages(self) -> List[DisplayEntry]:
        """The greeting first, then the conversation (only the greeting before identification)"""
        if self.state == WidgetState.LOADING:
            return []
        if self.state != WidgetState.ACTIVE:
            return [self.greeting]
        return [self.greeting, *self.log.entries]

    @property
    def can_send(self) -> bool:
        return self.state == WidgetState.ACTIVE and not self.is_sending

    def _text(self, key: str) -> str:
        return self.settings.text(key, self.locale)

    def _set_error(self, code: Optional[str]) -> None:
        self.error_code = code
        self.error = self._text(code) if code else None

    # ==================== Lifecycle ====================

    async def mount(self) -> WidgetState:
        """
        Restore the conversation from the stored token

        Returns:
            The resulting state
        """
        self.state = WidgetState.LOADING
        token = self.token_store.load()

        try:
            session = await self.store.get_session_by_token(token)
        except ChatError as e:
            logger.warning("[VisitorChat] Session lookup failed: %s", e)
            self._set_error("load_failed")
            self.state = WidgetState.NO_SESSION
            return self.state

        if session is None:
            if token:
                # Stale or closed token: start fresh, silently
                self.token_store.clear()
            self.state = WidgetState.NO_SESSION
            return self.state

        self.session = session
        if not session.has_identity:
            self.state = WidgetState.NEEDS_IDENTIFICATION
            return self.state

        await self._activate()
        return self.state

    async def close(self) -> None:
        """Tear down the realtime subscription (safe to call repeatedly)"""
        if self._subscription is not None:
            subscription, self._subscription = self._subscription, None
            await subscription.close()

    async def __aenter__(self) -> "VisitorChat":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def open(self) -> None:
        """Expand the widget; clears the new-message badge and marks replies read"""
        self.opened = True
        self.has_new_message = False
        if self.state == WidgetState.ACTIVE:
            await self._mark_admin_messages_read()

    def collapse(self) -> None:
        self.opened = False

    # ==================== Identification ====================

    async def identify(self, name: str, email: str) -> bool:
        """
        Submit the identification form

        Validation runs before any store call. On failure the state is kept
        and `error` holds the inline message; there is no automatic retry.

        Returns:
            True when the conversation is now active
        """
        if self.state == WidgetState.ACTIVE:
            return True

        code = check_visitor_info(name, email)
        if code:
            self._set_error(code)
            return False

        try:
            session = await self.store.get_or_create_session(
                VisitorInfo.parse(name, email),
                token=self.token_store.load()
            )
        except ChatValidationError as e:
            self._set_error(e.code)
            return False
        except ChatError as e:
            logger.warning("[VisitorChat] Could not start session: %s", e)
            self._set_error("session_failed")
            return False

        self._set_error(None)
        self.token_store.save(session.session_token)
        self.session = session
        await self._activate()
        return self.state == WidgetState.ACTIVE

    async def _activate(self) -> None:
        """Load history, mark admin replies read, subscribe to new messages"""
        await self.close()
        self.notice = None

        try:
            messages = await self.store.list_messages(self.session.session_token)
        except ChatError as e:
            logger.warning("[VisitorChat] History load failed: %s", e)
            self._set_error("load_failed")
            messages = []

        self.log.replace_all(messages)
        self.state = WidgetState.ACTIVE
        self._subscription = await self.hub.subscribe_messages(self.session.id, self._on_insert)
        await self._mark_admin_messages_read()

    async def _mark_admin_messages_read(self) -> None:
        try:
            changed = await self.store.mark_read(self.session.id, SenderType.VISITOR)
        except ChatError as e:
            logger.warning("[VisitorChat] mark_read failed: %s", e)
            return
        if changed:
            self.log.mark_read_by(SenderType.VISITOR)

    # ==================== Messaging ====================

    async def send(self, text: str) -> bool:
        """
        Send a visitor message with optimistic display

        Ignored when the text is blank, a send is in flight, or the
        conversation is not active. A failed send removes the optimistic
        entry; the text is not kept.

        Returns:
            True when the store confirmed the message
        """
        content = (text or "").strip()
        if not content or self.is_sending or self.state != WidgetState.ACTIVE:
            return False

        self.is_sending = True
        self._set_error(None)
        pending = self.log.add_pending(SenderType.VISITOR, content, session_id=self.session.id)

        try:
            message = await self.store.append_visitor_message(self.session.session_token, content)
        except SessionClosedError:
            self.log.discard(pending.local_id)
            self.notice = self._text("conversation_closed")
            return False
        except ChatValidationError as e:
            self.log.discard(pending.local_id)
            self._set_error(e.code)
            return False
        except ChatError as e:
            self.log.discard(pending.local_id)
            logger.warning("[VisitorChat] Send failed: %s", e)
            self._set_error("send_failed")
            return False
        finally:
            self.is_sending = False

        self.log.confirm(pending.local_id, message)
        return True

    async def _on_insert(self, message: ChatMessageRead) -> None:
        if self.session is None or message.session_id != self.session.id:
            return
        if not self.log.receive(message):
            return
        if message.sender_type == SenderType.ADMIN:
            if not self.opened:
                self.has_new_message = True
            else:
                await self._mark_admin_messages_read()
