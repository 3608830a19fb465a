"""
Chat error taxonomy

The store raises these; the visitor and admin cores catch ChatError at the
component boundary that started the action and surface it inline.
"""


class ChatError(Exception):
    """Base class for all chat errors"""


class ChatValidationError(ChatError, ValueError):
    """Input rejected before it reached the database

    Attributes:
        code: machine readable reason, also used as the localised text key
    """

    def __init__(self, code: str, message: str = None):
        super().__init__(message or code)
        self.code = code


class MessageValidationError(ChatValidationError):
    """Empty or oversized message text"""


class VisitorInfoError(ChatValidationError):
    """Missing name/email or malformed email"""


class InvalidStatusTransitionError(ChatValidationError):
    """Session status change that is not allowed (e.g. closed -> active)"""


class SessionNotFoundError(ChatError, LookupError):
    """Session id or token does not exist"""


class SessionClosedError(ChatError):
    """Visitor tried to write into a closed conversation"""


class StoreError(ChatError):
    """Backend/database failure; transient from the caller's point of view"""
