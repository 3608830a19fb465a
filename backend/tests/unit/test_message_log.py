"""
MessageLog unit tests
Optimistic entries, confirmation and realtime de-duplication
"""

from datetime import datetime, timezone

from livechat.core.message_log import (
    ConfirmedEntry,
    MessageLog,
    PendingEntry,
    TEMP_ID_PREFIX,
)
from livechat.models.message import ChatMessageRead, SenderType


def make_message(message_id, text="Hello", sender_type=SenderType.VISITOR, is_read=False):
    return ChatMessageRead(
        id=message_id,
        session_id=1,
        sender_type=sender_type,
        message=text,
        is_read=is_read,
        created_at=datetime(2024, 5, 1, 12, 0, message_id, tzinfo=timezone.utc)
    )


class TestPendingEntries:
    def test_add_pending(self):
        log = MessageLog()

        entry = log.add_pending(SenderType.VISITOR, "Hello", session_id=1)

        assert isinstance(entry, PendingEntry)
        assert entry.id.startswith(TEMP_ID_PREFIX)
        assert entry.pending is True
        assert entry.is_read is False
        assert log.ids == [entry.id]

    def test_temp_ids_are_unique(self):
        log = MessageLog()

        a = log.add_pending(SenderType.VISITOR, "one")
        b = log.add_pending(SenderType.VISITOR, "two")

        assert a.local_id != b.local_id
        assert [e.id for e in log.pending] == [a.id, b.id]

    def test_confirm_replaces_in_place(self):
        log = MessageLog([make_message(1, "earlier", SenderType.ADMIN)])
        entry = log.add_pending(SenderType.VISITOR, "Hello")

        assert log.confirm(entry.local_id, make_message(2, "Hello")) is True

        assert log.ids == [1, 2]
        confirmed = log.get(2)
        assert isinstance(confirmed, ConfirmedEntry)
        assert confirmed.message == "Hello"
        assert confirmed.pending is False
        assert entry.local_id not in log

    def test_confirm_keeps_position(self):
        log = MessageLog()
        first = log.add_pending(SenderType.VISITOR, "first")
        log.receive(make_message(7, "reply", SenderType.ADMIN))

        log.confirm(first.local_id, make_message(8, "first"))

        assert log.ids == [8, 7]

    def test_confirm_unknown_local_id(self):
        assert MessageLog().confirm("temp-missing", make_message(1)) is False

    def test_discard(self):
        log = MessageLog()
        entry = log.add_pending(SenderType.VISITOR, "Hello")

        assert log.discard(entry.local_id) is True
        assert len(log) == 0
        assert log.discard(entry.local_id) is False


class TestRealtimeReconciliation:
    def test_receive_deduplicates_by_id(self):
        log = MessageLog()

        assert log.receive(make_message(1)) is True
        assert log.receive(make_message(1)) is False
        assert log.ids == [1]

    def test_same_text_different_ids_both_kept(self):
        log = MessageLog()

        log.receive(make_message(1, "ok"))
        log.receive(make_message(2, "ok"))

        assert log.ids == [1, 2]

    def test_echo_before_confirm_leaves_one_entry(self):
        log = MessageLog()
        entry = log.add_pending(SenderType.VISITOR, "Hello")
        server_copy = make_message(5, "Hello")

        # The realtime echo lands while the send is still in flight
        log.receive(server_copy)
        log.confirm(entry.local_id, server_copy)

        assert log.ids == [5]

    def test_echo_after_confirm_is_ignored(self):
        log = MessageLog()
        entry = log.add_pending(SenderType.VISITOR, "Hello")
        server_copy = make_message(5, "Hello")

        log.confirm(entry.local_id, server_copy)

        assert log.receive(server_copy) is False
        assert log.ids == [5]

    def test_replace_all_collapses_duplicates(self):
        log = MessageLog()
        log.add_pending(SenderType.VISITOR, "stale")

        log.replace_all([make_message(1), make_message(2), make_message(1)])

        assert log.ids == [1, 2]
        assert log.pending == []


class TestReadMarking:
    def test_mark_read_by_visitor_flips_admin_messages(self):
        log = MessageLog([
            make_message(1, "question"),
            make_message(2, "answer", SenderType.ADMIN),
        ])
        log.add_pending(SenderType.VISITOR, "thanks")

        assert log.mark_read_by(SenderType.VISITOR) == 1

        assert log.get(1).is_read is False
        assert log.get(2).is_read is True
        assert log.mark_read_by(SenderType.VISITOR) == 0

    def test_mark_read_by_admin_flips_visitor_messages(self):
        log = MessageLog([
            make_message(1, "question"),
            make_message(2, "answer", SenderType.ADMIN),
        ])

        assert log.mark_read_by(SenderType.ADMIN) == 1
        assert log.get(1).is_read is True
        assert log.get(2).is_read is False
