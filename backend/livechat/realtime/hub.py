"""
Realtime hub - in-process publish/subscribe

Fan-out of committed row changes to the open widgets and dashboards.

Delivery model:
1. publish() is synchronous and only enqueues, so the publisher (the store)
   decides the order; it publishes right after each commit.
2. Every subscription owns a FIFO queue and a pump task, so each event
   reaches each subscriber exactly once and in publish order, and a slow
   handler never blocks the publisher or other subscribers.
3. Events published before a subscription existed are never delivered to
   it; historical backfill is the caller's job (list the messages first).
"""

import asyncio
import inspect
import logging
from typing import Any, Callable, Optional, Set

from livechat.models.message import ChatMessageRead
from livechat.realtime.events import (
    ChangeEvent,
    ChangeKind,
    MESSAGES_TABLE,
    SESSIONS_TABLE,
)

logger = logging.getLogger(__name__)

Handler = Callable[[Any], Any]


class Subscription:
    """
    Handle of one realtime listener

    Closing it (explicitly or by leaving `async with`) stops delivery on
    every exit path.
    """

    def __init__(
        self,
        hub: "RealtimeHub",
        name: str,
        handler: Callable[[ChangeEvent], Any],
        table: str,
        session_id: Optional[int] = None,
        kinds: Optional[Set[ChangeKind]] = None
    ):
        self.hub = hub
        self.name = name
        self.table = table
        self.session_id = session_id
        self.kinds = kinds
        self._handler = handler
        self._queue: asyncio.Queue = asyncio.Queue()
        self._busy = False
        self._closed = False
        self._task = asyncio.get_running_loop().create_task(self._pump(), name=f"realtime:{name}")

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def idle(self) -> bool:
        return self._queue.empty() and not self._busy

    def matches(self, event: ChangeEvent) -> bool:
        if self._closed or event.table != self.table:
            return False
        if self.session_id is not None and event.session_id != self.session_id:
            return False
        if self.kinds is not None and event.kind not in self.kinds:
            return False
        return True

    def deliver(self, event: ChangeEvent) -> None:
        self._queue.put_nowait(event)

    async def _pump(self) -> None:
        while True:
            event = await self._queue.get()
            self._busy = True
            try:
                result = self._handler(event)
                if inspect.isawaitable(result):
                    await result
            except asyncio.CancelledError:
                raise
            except Exception:
                # A broken listener must not stop later deliveries
                logger.exception("[RealtimeHub] Handler of '%s' failed on %s %s",
                                 self.name, event.kind.value, event.table)
            finally:
                self._busy = False
                self._queue.task_done()

    async def join(self) -> None:
        """Wait until every queued event has been handled"""
        if not self._closed:
            await self._queue.join()

    async def close(self) -> None:
        """Stop delivery and cancel the pump task (idempotent)"""
        if self._closed:
            return
        self._closed = True
        self.hub._discard(self)
        if asyncio.current_task() is self._task:
            # Closed from inside its own handler: the pump stops after it returns
            self._task.cancel()
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        # Undelivered events are dropped so that join() never waits on them
        while not self._queue.empty():
            self._queue.get_nowait()
            self._queue.task_done()
        logger.debug("[RealtimeHub] Unsubscribed '%s'", self.name)

    async def __aenter__(self) -> "Subscription":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()


class RealtimeHub:
    """
    Publish/subscribe channels keyed by table + optional session filter

    Usage:
        hub = RealtimeHub()
        async with await hub.subscribe_messages(session_id, on_insert):
            ...
    """

    def __init__(self):
        self._subscriptions: Set[Subscription] = set()

    @property
    def subscription_count(self) -> int:
        return len(self._subscriptions)

    # ==================== Subscribe ====================

    async def subscribe(
        self,
        handler: Callable[[ChangeEvent], Any],
        table: str,
        session_id: Optional[int] = None,
        kinds: Optional[Set[ChangeKind]] = None,
        name: Optional[str] = None
    ) -> Subscription:
        """
        Register a raw change listener

        Args:
            handler: called with each ChangeEvent; may be sync or async
            table: chat_sessions / chat_messages
            session_id: only events of this session (None = any session)
            kinds: only these change kinds (None = all)
            name: channel name used in logs

        Returns:
            The Subscription handle; the caller must close it on teardown
        """
        name = name or f"{table}:{session_id if session_id is not None else '*'}"
        subscription = Subscription(self, name, handler, table, session_id, kinds)
        self._subscriptions.add(subscription)
        logger.debug("[RealtimeHub] Subscribed '%s'", name)
        return subscription

    async def subscribe_messages(
        self,
        session_id: int,
        on_insert: Callable[[ChatMessageRead], Any]
    ) -> Subscription:
        """Message inserts of one session; on_insert receives the ChatMessageRead"""
        return await self.subscribe(
            lambda event: on_insert(event.record),
            table=MESSAGES_TABLE,
            session_id=session_id,
            kinds={ChangeKind.INSERT},
            name=f"chat-{session_id}"
        )

    async def subscribe_all_messages(
        self,
        on_insert: Callable[[ChatMessageRead], Any]
    ) -> Subscription:
        """Message inserts of any session"""
        return await self.subscribe(
            lambda event: on_insert(event.record),
            table=MESSAGES_TABLE,
            kinds={ChangeKind.INSERT},
            name="chat-messages:*"
        )

    async def subscribe_sessions(
        self,
        on_change: Callable[[ChangeEvent], Any]
    ) -> Subscription:
        """Any change of the sessions table; on_change receives the ChangeEvent"""
        return await self.subscribe(on_change, table=SESSIONS_TABLE, name="chat-sessions:*")

    async def unsubscribe(self, subscription: Subscription) -> None:
        await subscription.close()

    # ==================== Publish ====================

    def publish(self, event: ChangeEvent) -> int:
        """
        Fan an event out to every matching subscription

        Returns:
            Number of subscriptions the event was queued for
        """
        delivered = 0
        for subscription in list(self._subscriptions):
            if subscription.matches(event):
                subscription.deliver(event)
                delivered += 1
        return delivered

    # ==================== Lifecycle ====================

    async def join(self) -> None:
        """Wait until every subscription queue is drained, including events published meanwhile"""
        while True:
            pending = [s for s in list(self._subscriptions) if not s.idle]
            if not pending:
                return
            await asyncio.gather(*(s.join() for s in pending))

    async def close(self) -> None:
        """Tear down every subscription"""
        for subscription in list(self._subscriptions):
            await subscription.close()

    def _discard(self, subscription: Subscription) -> None:
        self._subscriptions.discard(subscription)
