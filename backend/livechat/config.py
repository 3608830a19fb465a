"""Settings loader

Loads runtime settings from a JSON config file.
Secrets (API keys, webhook URLs, admin email) are never read from files,
only from system environment variables.
"""

import json
import os
from pathlib import Path
from typing import Dict, Optional

from pydantic import BaseModel, Field


DEFAULT_CONFIG_PATH = Path(__file__).parent.parent / "chat_config.json"

DEFAULT_TEXTS = {
    "en": {
        "greeting": "Hi there! I'm Hasan. Leave me a message and I'll get back to you as soon as possible.",
        "conversation_closed": "This conversation has been closed. Start a new chat to reach me again.",
        "send_failed": "Your message could not be sent. Please try again.",
        "session_failed": "Failed to start chat session",
        "load_failed": "Could not load the conversation.",
        "name_required": "Please enter your name",
        "email_required": "Please enter your email",
        "email_invalid": "Please enter a valid email address",
        "message_empty": "Message cannot be empty",
        "message_too_long": "Message is too long (max 2000 characters)",
    },
}


class NotificationSettings(BaseModel):
    """Out-of-band admin notification settings, taken from the environment"""

    resend_api_key: Optional[str] = None
    admin_email: Optional[str] = None
    webhook_url: Optional[str] = None
    site_url: str = "http://localhost:3000"
    sender: str = "Chat Notification <noreply@hasanshiri.online>"
    timeout: float = 10.0

    @classmethod
    def from_env(cls) -> "NotificationSettings":
        return cls(
            resend_api_key=os.getenv("RESEND_API_KEY") or None,
            admin_email=os.getenv("ADMIN_EMAIL") or None,
            webhook_url=os.getenv("NOTIFICATION_WEBHOOK") or None,
            site_url=os.getenv("SITE_URL", "http://localhost:3000"),
        )


class Settings(BaseModel):
    """Chat runtime settings"""

    database_path: str = "database.db"
    max_message_length: int = Field(default=2000, gt=0)
    session_list_limit: int = Field(default=50, gt=0)
    session_token_prefix: str = "chat"
    default_locale: str = "en"
    admin_display_name: Optional[str] = None
    texts: Dict[str, Dict[str, str]] = Field(default_factory=lambda: dict(DEFAULT_TEXTS))
    notification: NotificationSettings = Field(default_factory=NotificationSettings)

    def text(self, key: str, locale: Optional[str] = None) -> str:
        """Return a localised text, falling back to the default locale and then to English

        Args:
            key: text key, e.g. "greeting"
            locale: requested locale ("en" / "fa")

        Returns:
            The localised string; the key itself if no translation exists
        """
        for candidate in (locale, self.default_locale, "en"):
            if candidate and key in self.texts.get(candidate, {}):
                return self.texts[candidate][key]
        return DEFAULT_TEXTS["en"].get(key, key)

    def supports_locale(self, locale: str) -> bool:
        return locale in self.texts


class SettingsLoader:
    """Loads and caches Settings from a JSON config file"""

    def __init__(self, config_path: Optional[str] = None):
        """Initialise the loader

        Args:
            config_path: config file path; if None, LIVECHAT_CONFIG or the
                default backend/chat_config.json is used
        """
        self._explicit = config_path is not None or bool(os.getenv("LIVECHAT_CONFIG"))
        if config_path is None:
            config_path = os.getenv("LIVECHAT_CONFIG") or str(DEFAULT_CONFIG_PATH)
        self.config_path = config_path
        self._loaded_config = None

    def _load_config(self) -> Dict:
        """Load the config file

        Returns:
            Config dict; empty when the default file is missing

        Raises:
            FileNotFoundError: an explicitly configured file does not exist
            json.JSONDecodeError: invalid JSON
        """
        if self._loaded_config is None:
            try:
                with open(self.config_path, "r", encoding="utf-8") as f:
                    self._loaded_config = json.load(f)
            except FileNotFoundError:
                if self._explicit:
                    raise FileNotFoundError(f"Config file not found: {self.config_path}")
                self._loaded_config = {}
            except json.JSONDecodeError as e:
                raise json.JSONDecodeError(f"Invalid JSON in {self.config_path}: {e.msg}", e.doc, e.pos)

        return self._loaded_config

    def load(self) -> Settings:
        config = dict(self._load_config())

        # file texts are merged over the built-in English defaults
        texts = {locale: dict(values) for locale, values in DEFAULT_TEXTS.items()}
        for locale, values in (config.pop("texts", None) or {}).items():
            texts.setdefault(locale, {}).update(values)

        # notification settings only ever come from the environment
        config.pop("notification", None)

        if os.getenv("DATABASE_PATH"):
            config["database_path"] = os.environ["DATABASE_PATH"]

        return Settings(
            texts=texts,
            notification=NotificationSettings.from_env(),
            **config
        )


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Return the cached global Settings"""
    global _settings
    if _settings is None:
        _settings = SettingsLoader().load()
    return _settings


def reset_settings() -> None:
    """Drop the cached settings (next get_settings() reloads)"""
    global _settings
    _settings = None
