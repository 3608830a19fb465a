"""
Visitor token persistence

Keeps the session token across page loads so a returning visitor is not
asked for name/email again.
"""

import json
import logging
import os
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


class TokenStore:
    """Where the widget keeps its session token"""

    def load(self) -> Optional[str]:
        raise NotImplementedError

    def save(self, token: str) -> None:
        raise NotImplementedError

    def clear(self) -> None:
        raise NotImplementedError


class MemoryTokenStore(TokenStore):
    def __init__(self, token: Optional[str] = None):
        self.token = token

    def load(self) -> Optional[str]:
        return self.token

    def save(self, token: str) -> None:
        self.token = token

    def clear(self) -> None:
        self.token = None


class FileTokenStore(TokenStore):
    """
    JSON file token store

    File layout: {"chat_session_token": "<token>"}
    """

    KEY = "chat_session_token"

    def __init__(self, path: str):
        self.path = Path(path)

    def load(self) -> Optional[str]:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return None
        except json.JSONDecodeError:
            logger.warning("[FileTokenStore] Ignoring corrupt token file %s", self.path)
            return None
        token = data.get(self.KEY) if isinstance(data, dict) else None
        return token or None

    def save(self, token: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump({self.KEY: token}, f)

    def clear(self) -> None:
        try:
            os.remove(self.path)
        except FileNotFoundError:
            pass
