"""
Typed routing failures carrying the audience they should be reported to
"""

from typing import Any, Optional


class ChatError(Exception):
    """
    Failure raised while authenticating or routing a chat message.

    The optional scope (connection, user_id, dialog_id) names the narrowest
    audience that should be notified. An error with no scope is only logged.
    """

    def __init__(self, message: str = "", connection: Any = None,
                 user_id: Any = None, dialog_id: Any = None):
        super().__init__(message)
        self.message = message
        self.connection = connection
        self.user_id = user_id
        self.dialog_id = dialog_id

    @property
    def has_scope(self) -> bool:
        return bool(self.connection is not None or self.user_id or self.dialog_id)

    def __repr__(self):
        return (f"{type(self).__name__}({self.message!r}, user_id={self.user_id!r}, "
                f"dialog_id={self.dialog_id!r})")


class AuthenticationError(ChatError):
    """Missing or invalid session, unreachable store or malformed session record"""


class ValidationError(ChatError):
    """Malformed message, missing dialog id or text that sanitizes to nothing"""


class AuthorizationError(ChatError):
    """Unknown dialog or sender outside the dialog membership"""


class DeliveryError(ChatError):
    """Persistence or send hook failure"""


class SessionStoreUnavailable(Exception):
    """Raised by a session store that cannot be reached"""


class SessionDecodeError(ValueError):
    """Raised when a stored session blob cannot be decoded"""


class DialogDecodeError(ValueError):
    """Raised when a dialog row carries an undecodable membership list"""
