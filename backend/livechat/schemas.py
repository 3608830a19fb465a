"""
Input validation and aggregate schemas

Client-side checks run before any store call; the store repeats them so
that no invalid row is ever written.
"""

import re
from typing import Optional

from pydantic import BaseModel, field_validator

from livechat.errors import MessageValidationError, VisitorInfoError


EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def check_visitor_info(name: Optional[str], email: Optional[str]) -> Optional[str]:
    """
    Validate the identification form

    Args:
        name: visitor name
        email: visitor email

    Returns:
        None when valid, otherwise the error code
        ("name_required" / "email_required" / "email_invalid")
    """
    if not name or not name.strip():
        return "name_required"
    if not email or not email.strip():
        return "email_required"
    if not EMAIL_PATTERN.match(email.strip()):
        return "email_invalid"
    return None


def normalize_message_text(text: Optional[str], max_length: int) -> str:
    """
    Trim message text and enforce the length limit

    Raises:
        MessageValidationError: empty after trim ("message_empty") or longer
            than max_length ("message_too_long")
    """
    content = (text or "").strip()
    if not content:
        raise MessageValidationError("message_empty", "Message cannot be empty")
    if len(content) > max_length:
        raise MessageValidationError(
            "message_too_long",
            f"Message is too long (max {max_length} characters)"
        )
    return content


class VisitorInfo(BaseModel):
    """Identification form payload: name + email, both required"""
    name: str
    email: str

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        return value.strip()

    @field_validator("email")
    @classmethod
    def _normalize_email(cls, value: str) -> str:
        return value.strip().lower()

    @classmethod
    def parse(cls, name: Optional[str], email: Optional[str]) -> "VisitorInfo":
        """
        Validate and build a VisitorInfo

        Raises:
            VisitorInfoError: carrying the check_visitor_info error code
        """
        error = check_visitor_info(name, email)
        if error:
            raise VisitorInfoError(error)
        return cls(name=name, email=email)


class ChatStats(BaseModel):
    """Dashboard stat cards"""
    active_sessions: int = 0
    closed_sessions: int = 0
    total_messages: int = 0
    unread_messages: int = 0
