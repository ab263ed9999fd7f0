"""
Authorization and fan-out of chat messages to dialog members
"""

import asyncio
from typing import Any, Dict, List, Optional, Tuple

from .connection_directory import ConnectionDirectory
from .constants import ERROR_MESSAGES, HOOK_TIMEOUT_SECONDS, SEND_TIMEOUT_SECONDS
from .dialog_directory import DialogDirectory
from .exceptions import AuthenticationError, AuthorizationError, DeliveryError, DialogDecodeError, ValidationError
from .hooks import NullPersistenceSink, NullSendObserver, PersistenceSink, SendObserver
from .logger import get_logger, log_message_event, log_security_event
from .models import ChatMessage, ClientConnection
from .validators import DEFAULT_ALLOWED_TAGS, frame_too_large, normalize_id, parse_message_payload, sanitize_text

logger = get_logger()

DIALOG_FIELD = "dialogId"
TEXT_FIELD = "text"


class MessageRouter:
    """Validates, authorizes and broadcasts a single inbound chat message"""

    def __init__(
        self,
        connections: ConnectionDirectory,
        dialogs: DialogDirectory,
        persistence: Optional[PersistenceSink] = None,
        observer: Optional[SendObserver] = None,
        allowed_tags=DEFAULT_ALLOWED_TAGS,
        send_timeout: float = SEND_TIMEOUT_SECONDS,
        hook_timeout: float = HOOK_TIMEOUT_SECONDS,
    ):
        self.connections = connections
        self.dialogs = dialogs
        self.persistence = persistence or NullPersistenceSink()
        self.observer = observer or NullSendObserver()
        self.allowed_tags = allowed_tags
        self.send_timeout = send_timeout
        self.hook_timeout = hook_timeout

    async def route(self, sender: ClientConnection, raw_message: Any) -> ChatMessage:
        """
        Route one inbound frame to every online member of its dialog

        Checks run in a fixed order; each failure is scoped to the sending
        connection because that is all that is known when it is detected.

        Args:
            sender: Connection the frame arrived on
            raw_message: Raw frame text or bytes

        Returns:
            The delivered message

        Raises:
            ValidationError, AuthenticationError, AuthorizationError: scoped to sender
            DeliveryError: scoped to sender when the dialog store fails,
                unscoped when a persistence or send hook fails
        """
        if frame_too_large(raw_message):
            raise ValidationError(ERROR_MESSAGES["message_too_large"], sender)

        payload = parse_message_payload(raw_message)
        if payload is None:
            raise ValidationError(ERROR_MESSAGES["invalid_json"], sender)

        user_id = await self.connections.lookup_user_by_connection(sender)
        if user_id is None:
            raise AuthenticationError(ERROR_MESSAGES["unknown_connection"], sender)

        session = await self.connections.session_for(user_id)
        if session is None:
            raise AuthenticationError(ERROR_MESSAGES["missing_session_record"], sender)

        dialog_id = normalize_id(payload.get(DIALOG_FIELD))
        if dialog_id is None:
            raise ValidationError(ERROR_MESSAGES["missing_dialog"], sender)

        try:
            dialog = await self.dialogs.info_for(dialog_id)
        except DialogDecodeError as e:
            logger.error(f"Dialog lookup failed: {e}")
            dialog = None
        except Exception as e:
            logger.error(f"Dialog repository failed for {dialog_id}: {e!r}")
            raise DeliveryError(ERROR_MESSAGES["dialog_unavailable"], sender, dialog_id=dialog_id) from e
        if dialog is None:
            raise AuthorizationError(ERROR_MESSAGES["unknown_dialog"], sender)

        if not dialog.has_member(user_id):
            log_security_event("dialog_access_denied", {"user_id": user_id, "dialog_id": dialog_id})
            raise AuthorizationError(ERROR_MESSAGES["not_a_member"], sender)

        message = ChatMessage(
            dialog_id=dialog_id,
            text=sanitize_text(payload.get(TEXT_FIELD), self.allowed_tags),
            sender=session,
            fields=payload,
        )
        if not message.text:
            raise ValidationError(ERROR_MESSAGES["empty_message"], sender)

        await self._run_hook("before_send", self.observer.before_send, message)

        # Hooks may rewrite the text; never broadcast it unsanitized
        message.text = sanitize_text(message.text, self.allowed_tags)
        if not message.text:
            raise ValidationError(ERROR_MESSAGES["empty_message"], sender)

        delivered, unread = await self.broadcast(message, dialog.members)

        if unread:
            await self._run_hook("unread_save", self.persistence.unread_save, message, unread)
        else:
            await self._run_hook("plain_save", self.persistence.plain_save, message)

        await self._run_hook("after_send", self.observer.after_send, message)

        log_message_event(dialog_id, user_id, "routed",
                          f"delivered={delivered} | unread={len(unread)} | id={message.message_id[:8]}...")
        return message

    async def broadcast(self, message: ChatMessage, members) -> Tuple[int, List[Any]]:
        """
        Send a message to every online member

        Each send is independent: a failing recipient is logged and the rest
        still receive the message.

        Args:
            message: Message to deliver
            members: Dialog membership, in delivery order

        Returns:
            Tuple of (successful sends, offline member ids)
        """
        online, offline = await self.connections.connections_for(members)
        frame = message.to_dict()

        results = await asyncio.gather(
            *(self._send(user_id, connection, frame, message) for user_id, connection in online)
        )
        return sum(results), offline

    async def _send(self, user_id: Any, connection: ClientConnection, frame: Dict[str, Any],
                    message: ChatMessage) -> bool:
        try:
            await asyncio.wait_for(connection.send_json(frame), timeout=self.send_timeout)
            return True
        except Exception as e:
            logger.error(f"Failed to send message to user {user_id}: {e!r}")
            log_security_event("message_send_failed", {
                "recipient": user_id,
                "message_id": message.message_id,
                "error": repr(e),
            })
            return False

    async def _run_hook(self, name: str, hook, *args):
        try:
            await asyncio.wait_for(hook(*args), timeout=self.hook_timeout)
        except asyncio.TimeoutError:
            raise DeliveryError(f"{name} hook timed out after {self.hook_timeout}s") from None
        except Exception as e:
            raise DeliveryError(f"{name} hook failed: {e!r}") from e
