"""
Realtime hub unit tests
Filtering, ordering and teardown of subscriptions
"""

import asyncio
from datetime import datetime, timezone

from livechat.models.message import ChatMessageRead, SenderType
from livechat.realtime import ChangeEvent, ChangeKind, RealtimeHub, SESSIONS_TABLE


def make_message(message_id: int, session_id: int, text: str = "hi") -> ChatMessageRead:
    now = datetime.now(timezone.utc)
    return ChatMessageRead(
        id=message_id,
        session_id=session_id,
        sender_type=SenderType.VISITOR,
        message=text,
        is_read=False,
        created_at=now
    )


class TestSubscriptionFiltering:
    """Which events reach which subscription"""

    def test_session_scoped_subscription(self):
        async def scenario():
            hub = RealtimeHub()
            received = []
            await hub.subscribe_messages(1, received.append)

            hub.publish(ChangeEvent.message_inserted(make_message(10, session_id=1)))
            hub.publish(ChangeEvent.message_inserted(make_message(11, session_id=2)))
            await hub.join()
            await hub.close()
            return received

        received = asyncio.run(scenario())

        assert [m.id for m in received] == [10]

    def test_all_messages_subscription(self):
        async def scenario():
            hub = RealtimeHub()
            received = []
            await hub.subscribe_all_messages(received.append)

            hub.publish(ChangeEvent.message_inserted(make_message(10, session_id=1)))
            hub.publish(ChangeEvent.message_inserted(make_message(11, session_id=2)))
            hub.publish(ChangeEvent.session_changed(ChangeKind.INSERT, 3))
            await hub.join()
            await hub.close()
            return received

        assert [m.id for m in asyncio.run(scenario())] == [10, 11]

    def test_sessions_subscription_gets_events(self):
        async def scenario():
            hub = RealtimeHub()
            events = []
            await hub.subscribe_sessions(events.append)

            hub.publish(ChangeEvent.session_changed(ChangeKind.INSERT, 1))
            hub.publish(ChangeEvent.session_changed(ChangeKind.DELETE, 1))
            hub.publish(ChangeEvent.message_inserted(make_message(10, session_id=1)))
            await hub.join()
            await hub.close()
            return events

        events = asyncio.run(scenario())

        assert [(e.table, e.kind) for e in events] == [
            (SESSIONS_TABLE, ChangeKind.INSERT),
            (SESSIONS_TABLE, ChangeKind.DELETE),
        ]

    def test_no_backfill_for_late_subscribers(self):
        async def scenario():
            hub = RealtimeHub()
            received = []
            hub.publish(ChangeEvent.message_inserted(make_message(10, session_id=1)))
            await hub.subscribe_messages(1, received.append)
            hub.publish(ChangeEvent.message_inserted(make_message(11, session_id=1)))
            await hub.join()
            await hub.close()
            return received

        assert [m.id for m in asyncio.run(scenario())] == [11]


class TestDelivery:
    """Ordering and isolation"""

    def test_publish_order_and_exactly_once(self):
        async def scenario():
            hub = RealtimeHub()
            first, second = [], []
            await hub.subscribe_messages(1, first.append)
            await hub.subscribe_messages(1, second.append)

            counts = [
                hub.publish(ChangeEvent.message_inserted(make_message(i, session_id=1)))
                for i in range(1, 21)
            ]
            await hub.join()
            await hub.close()
            return counts, first, second

        counts, first, second = asyncio.run(scenario())

        assert counts == [2] * 20
        assert [m.id for m in first] == list(range(1, 21))
        assert [m.id for m in second] == list(range(1, 21))

    def test_async_handler(self):
        async def scenario():
            hub = RealtimeHub()
            received = []

            async def on_insert(message):
                await asyncio.sleep(0)
                received.append(message.id)

            await hub.subscribe_messages(1, on_insert)
            for i in (1, 2, 3):
                hub.publish(ChangeEvent.message_inserted(make_message(i, session_id=1)))
            await hub.join()
            await hub.close()
            return received

        assert asyncio.run(scenario()) == [1, 2, 3]

    def test_failing_handler_does_not_stop_delivery(self):
        async def scenario():
            hub = RealtimeHub()
            received, healthy = [], []

            def flaky(message):
                if message.id == 1:
                    raise RuntimeError("boom")
                received.append(message.id)

            await hub.subscribe_messages(1, flaky)
            await hub.subscribe_messages(1, lambda m: healthy.append(m.id))
            for i in (1, 2):
                hub.publish(ChangeEvent.message_inserted(make_message(i, session_id=1)))
            await hub.join()
            await hub.close()
            return received, healthy

        received, healthy = asyncio.run(scenario())

        assert received == [2]
        assert healthy == [1, 2]


class TestTeardown:
    """Unsubscribe paths"""

    def test_unsubscribe_stops_delivery(self):
        async def scenario():
            hub = RealtimeHub()
            received = []
            subscription = await hub.subscribe_messages(1, received.append)
            hub.publish(ChangeEvent.message_inserted(make_message(1, session_id=1)))
            await hub.join()

            await hub.unsubscribe(subscription)
            delivered = hub.publish(ChangeEvent.message_inserted(make_message(2, session_id=1)))
            await hub.join()
            return received, delivered, subscription.closed, hub.subscription_count

        received, delivered, closed, count = asyncio.run(scenario())

        assert [m.id for m in received] == [1]
        assert delivered == 0
        assert closed is True
        assert count == 0

    def test_context_manager_closes(self):
        async def scenario():
            hub = RealtimeHub()
            async with await hub.subscribe_messages(1, lambda m: None):
                inside = hub.subscription_count
            return inside, hub.subscription_count

        assert asyncio.run(scenario()) == (1, 0)

    def test_close_is_idempotent(self):
        async def scenario():
            hub = RealtimeHub()
            subscription = await hub.subscribe_sessions(lambda e: None)
            await subscription.close()
            await subscription.close()
            return hub.subscription_count

        assert asyncio.run(scenario()) == 0

    def test_close_from_own_handler(self):
        async def scenario():
            hub = RealtimeHub()
            received = []
            holder = {}

            async def once(message):
                received.append(message.id)
                await holder["subscription"].close()

            holder["subscription"] = await hub.subscribe_messages(1, once)
            hub.publish(ChangeEvent.message_inserted(make_message(1, session_id=1)))
            await asyncio.sleep(0.01)
            hub.publish(ChangeEvent.message_inserted(make_message(2, session_id=1)))
            await hub.join()
            return received, hub.subscription_count

        assert asyncio.run(scenario()) == ([1], 0)

    def test_hub_close_tears_down_everything(self):
        async def scenario():
            hub = RealtimeHub()
            await hub.subscribe_messages(1, lambda m: None)
            await hub.subscribe_sessions(lambda e: None)
            await hub.close()
            return hub.subscription_count

        assert asyncio.run(scenario()) == 0
