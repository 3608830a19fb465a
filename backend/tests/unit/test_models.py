"""
Model unit tests
Table definitions, defaults and read model conversion
"""

from datetime import datetime, timezone

from sqlmodel import select

from livechat.models import (
    ChatSession, ChatSessionRead, SessionStatus,
    ChatMessage, ChatMessageRead, SenderType,
    as_utc
)


class TestChatSessionModel:
    """ChatSession table"""

    def test_table_name(self):
        assert ChatSession.__tablename__ == "chat_sessions"

    def test_defaults(self):
        session = ChatSession(session_token="chat_abc")

        assert session.status == SessionStatus.ACTIVE
        assert session.visitor_name is None
        assert session.visitor_email is None
        assert session.created_at is not None
        assert session.last_message_at is not None

    def test_session_token_is_unique_column(self):
        column = ChatSession.__table__.columns["session_token"]
        assert column.unique is True
        assert column.index is True

    def test_persist_and_reload(self, test_db_session):
        session = ChatSession(session_token="chat_persist", visitor_name="Ada")
        test_db_session.add(session)
        test_db_session.commit()

        loaded = test_db_session.exec(
            select(ChatSession).where(ChatSession.session_token == "chat_persist")
        ).first()

        assert loaded is not None
        assert loaded.visitor_name == "Ada"
        assert loaded.status == SessionStatus.ACTIVE


class TestChatMessageModel:
    """ChatMessage table"""

    def test_table_name(self):
        assert ChatMessage.__tablename__ == "chat_messages"

    def test_defaults(self):
        message = ChatMessage(session_id=1, sender_type=SenderType.VISITOR, message="Hi")

        assert message.is_read is False
        assert message.read_at is None
        assert message.sender_name is None

    def test_session_foreign_key(self):
        column = ChatMessage.__table__.columns["session_id"]
        foreign_keys = list(column.foreign_keys)

        assert len(foreign_keys) == 1
        assert foreign_keys[0].target_fullname == "chat_sessions.id"


class TestReadModels:
    """Read model conversion"""

    def test_session_read_from_row(self, test_chat_session):
        read = ChatSessionRead.model_validate(test_chat_session, update={"unread_count": 3})

        assert read.id == test_chat_session.id
        assert read.session_token == "chat_test_token"
        assert read.unread_count == 3
        assert read.message_count == 0
        assert read.is_active is True
        assert read.has_identity is True

    def test_session_read_datetimes_are_utc(self, test_db_session, test_chat_session):
        # SQLite returns naive datetimes; the read model re-attaches UTC
        test_db_session.expire_all()
        row = test_db_session.get(ChatSession, test_chat_session.id)
        read = ChatSessionRead.model_validate(row)

        assert read.created_at.tzinfo is not None
        assert read.last_message_at.tzinfo is not None

    def test_message_read_from_row(self, test_chat_messages):
        read = ChatMessageRead.model_validate(test_chat_messages[1])

        assert read.sender_type == SenderType.ADMIN
        assert read.sender_name == "Hasan"
        assert read.message == "Hi Ada, yes I am!"
        assert read.created_at.tzinfo is not None

    def test_has_identity_requires_email(self):
        read = ChatSessionRead(
            id=1,
            session_token="chat_x",
            visitor_name="Ada",
            status=SessionStatus.ACTIVE,
            created_at=datetime.now(timezone.utc),
            updated_at=datetime.now(timezone.utc)
        )
        assert read.has_identity is False


class TestAsUtc:
    def test_naive_gets_utc(self):
        value = as_utc(datetime(2024, 1, 1, 12, 0))
        assert value.tzinfo == timezone.utc

    def test_aware_is_untouched(self):
        value = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
        assert as_utc(value) is value

    def test_none(self):
        assert as_utc(None) is None
