"""
Dialog chat relay
Session-authenticated websocket fan-out with dialog membership checks
"""

from .models import ClientConnection, Session, DialogInfo, ChatMessage, ErrorNotification
from .exceptions import (
    ChatError,
    AuthenticationError,
    ValidationError,
    AuthorizationError,
    DeliveryError,
    SessionStoreUnavailable,
    SessionDecodeError,
    DialogDecodeError,
)
from .validators import sanitize_text, parse_allowed_tags, normalize_id
from .session_codec import decode_session_blob
from .session_auth import SessionAuthenticator, RedisSessionStore, InMemorySessionStore
from .connection_directory import ConnectionDirectory
from .dialog_directory import DialogDirectory
from .hooks import (
    PersistenceSink,
    SendObserver,
    NullPersistenceSink,
    NullSendObserver,
    CallbackPersistenceSink,
    CallbackSendObserver,
)
from .message_router import MessageRouter
from .error_reporter import ErrorReporter
from .relay import ChatRelay, RelayState
from .storage import SqliteChatStore, InMemoryDialogRepository
from .logger import (
    get_logger,
    get_chat_log,
    log_security_event,
    log_connection_event,
    log_message_event,
    log_websocket_event,
    log_system_event,
)

__all__ = [
    'ClientConnection',
    'Session',
    'DialogInfo',
    'ChatMessage',
    'ErrorNotification',
    'ChatError',
    'AuthenticationError',
    'ValidationError',
    'AuthorizationError',
    'DeliveryError',
    'SessionStoreUnavailable',
    'SessionDecodeError',
    'DialogDecodeError',
    'sanitize_text',
    'parse_allowed_tags',
    'normalize_id',
    'decode_session_blob',
    'SessionAuthenticator',
    'RedisSessionStore',
    'InMemorySessionStore',
    'ConnectionDirectory',
    'DialogDirectory',
    'PersistenceSink',
    'SendObserver',
    'NullPersistenceSink',
    'NullSendObserver',
    'CallbackPersistenceSink',
    'CallbackSendObserver',
    'MessageRouter',
    'ErrorReporter',
    'ChatRelay',
    'RelayState',
    'SqliteChatStore',
    'InMemoryDialogRepository',
    'get_logger',
    'get_chat_log',
    'log_security_event',
    'log_connection_event',
    'log_message_event',
    'log_websocket_event',
    'log_system_event',
]
