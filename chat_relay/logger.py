"""
Secure logging configuration for the dialog chat relay
"""

import logging
import sys
from typing import Optional
from logging.handlers import RotatingFileHandler
from .constants import LOG_LEVEL, CHAT_LOG_PATH, CHAT_LOG_MAX_BYTES, CHAT_LOG_BACKUP_COUNT

CHAT_LOG_NAME = "chat_relay.chat_log"


class SecureFormatter(logging.Formatter):
    """Custom formatter that sanitizes sensitive data"""

    MASKED_KEYS = ("password=", "token=", "session_id=")

    def format(self, record):
        message = super().format(record)
        for key in self.MASKED_KEYS:
            message = message.replace(key, f"{key}***")
        return message


def get_logger(name: str = "chat_relay") -> logging.Logger:
    """
    Get a secure logger instance with proper formatting

    Args:
        name: Logger name

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(logging.DEBUG)
        handler.setFormatter(SecureFormatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        ))

        logger.addHandler(handler)
        logger.setLevel(LOG_LEVEL)

        # Prevent propagation to root logger
        logger.propagate = False

    return logger


def get_chat_log(path: Optional[str] = None) -> logging.Logger:
    """
    Get the append-only chat log that receives errors with no addressable scope

    Args:
        path: Log file path, defaults to CHAT_LOG_PATH

    Returns:
        Logger writing plain messages to a rotating file
    """
    chat_log = logging.getLogger(CHAT_LOG_NAME)

    if not chat_log.handlers:
        handler = RotatingFileHandler(
            path or CHAT_LOG_PATH,
            maxBytes=CHAT_LOG_MAX_BYTES,
            backupCount=CHAT_LOG_BACKUP_COUNT,
            encoding="utf-8",
            delay=True,
        )
        handler.setFormatter(SecureFormatter('%(asctime)s - %(message)s'))
        chat_log.addHandler(handler)
        chat_log.setLevel(logging.INFO)
        chat_log.propagate = False

    return chat_log


def log_security_event(event_type: str, details: dict, logger: Optional[logging.Logger] = None):
    """
    Log security-related events with structured data

    Args:
        event_type: Type of security event
        details: Event details
        logger: Logger instance (optional)
    """
    if logger is None:
        logger = get_logger()

    logger.warning(f"SECURITY_EVENT: {event_type} | {details}")


def log_connection_event(user_id, action: str, connection_id: str = "unknown", ip_address: str = "unknown"):
    """
    Log connection lifecycle events for monitoring

    Args:
        user_id: Authenticated user identity
        action: Action (connect/disconnect/superseded)
        connection_id: Connection identifier
        ip_address: Client IP address
    """
    logger = get_logger()
    logger.info(f"CONNECTION_EVENT: {action} | user={user_id} | conn={connection_id} | ip={ip_address}")


def log_message_event(dialog_id, user_id, action: str, details: str = ""):
    """
    Log message routing events for debugging

    Args:
        dialog_id: Dialog the message belongs to
        user_id: Sender identity
        action: Action (routed/send_failed/saved)
        details: Additional details
    """
    logger = get_logger()
    logger.info(f"MESSAGE_EVENT: {action} | dialog={dialog_id} | user={user_id} | {details}")


def log_websocket_event(event_type: str, connection_id: str, details: str = ""):
    """
    Log WebSocket protocol events

    Args:
        event_type: Type of WebSocket event
        connection_id: Connection identifier
        details: Additional details
    """
    logger = get_logger()
    logger.debug(f"WEBSOCKET_EVENT: {event_type} | conn={connection_id} | {details}")


def log_system_event(event_type: str, details: str, level: str = "info"):
    """
    Log system-level events

    Args:
        event_type: Type of system event
        details: Event details
        level: Log level (info/warning/error)
    """
    logger = get_logger()
    log_message = f"SYSTEM_EVENT: {event_type} | {details}"

    if level == "warning":
        logger.warning(log_message)
    elif level == "error":
        logger.error(log_message)
    else:
        logger.info(log_message)
