"""
Pytest configuration
In-memory database, store, hub and sample data fixtures
"""

import asyncio
import sys
from pathlib import Path
from typing import Generator

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, create_engine

# Add the backend directory to sys.path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from livechat.config import NotificationSettings, Settings, SettingsLoader
from livechat.db.init_db import create_tables
from livechat.models import (
    ChatSession, SessionStatus,
    ChatMessage, SenderType
)
from livechat.realtime.hub import RealtimeHub
from livechat.services.chat_store import ChatStore


# ==================== Database fixtures ====================

@pytest.fixture(scope="function")
def test_db_engine():
    """
    In-memory database engine
    Every test function gets a brand new database; StaticPool shares the
    single connection with the store's worker thread
    """
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )

    create_tables(engine)

    yield engine

    engine.dispose()


@pytest.fixture(scope="function")
def test_db_session(test_db_engine) -> Generator[Session, None, None]:
    with Session(test_db_engine) as session:
        yield session


# ==================== Settings fixtures ====================

@pytest.fixture(scope="function")
def settings() -> Settings:
    """Settings from the shipped chat_config.json, notifications disabled"""
    loaded = SettingsLoader().load()
    return loaded.model_copy(update={"notification": NotificationSettings()})


# ==================== Store / realtime fixtures ====================

@pytest.fixture(scope="function")
def hub() -> RealtimeHub:
    return RealtimeHub()


@pytest.fixture(scope="function")
def chat_store(test_db_engine, hub, settings):
    """
    ChatStore bound to the in-memory database and the test hub
    """
    store = ChatStore(engine=test_db_engine, hub=hub, settings=settings)
    yield store
    asyncio.run(store.close())


# ==================== Sample data fixtures ====================

@pytest.fixture(scope="function")
def test_chat_session(test_db_session: Session) -> ChatSession:
    session = ChatSession(
        session_token="chat_test_token",
        visitor_name="Ada",
        visitor_email="ada@example.com",
        status=SessionStatus.ACTIVE
    )
    test_db_session.add(session)
    test_db_session.commit()
    test_db_session.refresh(session)
    return session


@pytest.fixture(scope="function")
def test_chat_messages(test_db_session: Session, test_chat_session: ChatSession) -> list[ChatMessage]:
    """
    One visitor message and one admin reply
    """
    from livechat.repositories.session_repository import SessionRepository

    repo = SessionRepository(test_db_session)
    return [
        repo.create_message(test_chat_session.id, SenderType.VISITOR, "Hello, are you available for a project?"),
        repo.create_message(test_chat_session.id, SenderType.ADMIN, "Hi Ada, yes I am!", sender_name="Hasan"),
    ]


# ==================== Repository fixtures ====================

@pytest.fixture(scope="function")
def session_repository(test_db_session: Session):
    from livechat.repositories.session_repository import SessionRepository
    return SessionRepository(test_db_session)


# ==================== Pytest configuration ====================

def pytest_configure(config):
    """
    Register test markers
    """
    config.addinivalue_line(
        "markers", "unit: Unit tests"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests"
    )
    config.addinivalue_line(
        "markers", "slow: Slow running tests"
    )
