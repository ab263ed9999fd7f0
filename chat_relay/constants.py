"""
Runtime settings for the dialog chat relay
"""

import os

# Session store
REDIS_URL = os.getenv("CHAT_REDIS_URL", "unix:///var/run/redis/redis.sock")
SESSION_KEY_NAMESPACE = os.getenv("CHAT_SESSION_NAMESPACE", "PHPREDIS_SESSION")
SESSION_QUERY_PARAM = os.getenv("CHAT_SESSION_PARAM", "session_id")
SESSION_USER_FIELD = "user_id"

# Dialog and message storage
CHAT_DB_PATH = os.getenv("CHAT_DB_PATH", "chat.db")
DIALOG_MEMBERS_FIELD = "users"
DIALOG_CACHE_TTL_SECONDS = float(os.getenv("CHAT_DIALOG_CACHE_TTL", "0"))

# Message limits
MAX_MESSAGE_SIZE_BYTES = 10240
ALLOWED_TAGS = os.getenv("CHAT_ALLOWED_TAGS", "<img><iframe>")

# Delivery settings
SEND_TIMEOUT_SECONDS = 5.0
HOOK_TIMEOUT_SECONDS = 10.0
CLOSE_SUPERSEDED_CONNECTIONS = os.getenv("CHAT_CLOSE_SUPERSEDED", "1") == "1"

# WebSocket settings
HOST = os.getenv("CHAT_HOST", "0.0.0.0")
PORT = int(os.getenv("CHAT_PORT", "8000"))
AUTH_FAILED_CLOSE_CODE = 1008
SUPERSEDED_CLOSE_CODE = 4000

# Logging
LOG_LEVEL = os.getenv("CHAT_LOG_LEVEL", "INFO")
CHAT_LOG_PATH = os.getenv("CHAT_LOG_PATH", "chat.log")
CHAT_LOG_MAX_BYTES = 5 * 1024 * 1024
CHAT_LOG_BACKUP_COUNT = 3

# Error messages
ERROR_MESSAGES = {
    "missing_session": "Session id was not provided",
    "store_unavailable": "Session store is unavailable",
    "session_not_found": "Session not found",
    "session_undecodable": "Failed to decode session data",
    "missing_user": "Failed to resolve the session user",
    "invalid_json": "Message must be a JSON object",
    "unknown_connection": "Connection not found",
    "missing_session_record": "Session not found for this connection",
    "missing_dialog": "Dialog id is not set",
    "unknown_dialog": "Dialog with this id has not been created yet",
    "not_a_member": "You are not permitted to write to this dialog",
    "message_too_large": "Message is too large",
    "dialog_unavailable": "Dialog store is unavailable, try again later",
    "empty_message": "Empty message",
    "superseded": "Session opened from another connection",
}
