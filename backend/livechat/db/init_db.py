"""
Database initialisation
Creates the engine and the chat_sessions / chat_messages tables
"""

import logging
import os
from pathlib import Path
from typing import Optional

from sqlmodel import SQLModel, create_engine

# Imported for their side effect of registering the tables on SQLModel.metadata
from livechat.models.chat import ChatSession  # noqa: F401
from livechat.models.message import ChatMessage  # noqa: F401
from livechat.config import get_settings

logger = logging.getLogger(__name__)


def get_database_url() -> str:
    """
    Return the database URL
    DATABASE_URL wins, otherwise a SQLite file from the settings
    """
    database_url = os.environ.get("DATABASE_URL")
    if database_url:
        return database_url

    db_path = get_settings().database_path
    # Relative paths are resolved against the backend directory
    if not os.path.isabs(db_path):
        project_root = Path(__file__).parent.parent.parent
        db_path = str(project_root / db_path)
    return f"sqlite:///{db_path}"


def get_engine(database_url: Optional[str] = None):
    """
    Create and return the database engine

    Args:
        database_url: explicit URL; defaults to get_database_url()
    """
    database_url = database_url or get_database_url()
    connect_args = {}
    if database_url.startswith("sqlite"):
        # The store runs queries on a worker thread
        connect_args["check_same_thread"] = False
    return create_engine(
        database_url,
        echo=False,  # set True to print SQL statements
        connect_args=connect_args
    )


def create_tables(engine) -> None:
    """
    Create all tables
    SQLModel derives the schema from the table models
    """
    SQLModel.metadata.create_all(engine)
    logger.info("[init_db] Chat tables ready at %s", engine.url)


def init_db(database_url: Optional[str] = None):
    """
    Full initialisation: engine + tables

    Returns:
        The initialised engine
    """
    engine = get_engine(database_url)
    create_tables(engine)
    return engine


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    init_db()
