"""
Connection lifecycle for the chat relay: Connecting -> Authenticated -> Closed
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from .connection_directory import ConnectionDirectory
from .constants import (
    AUTH_FAILED_CLOSE_CODE,
    CLOSE_SUPERSEDED_CONNECTIONS,
    ERROR_MESSAGES,
    SUPERSEDED_CLOSE_CODE,
)
from .dialog_directory import DialogDirectory, DialogRepository
from .error_reporter import ErrorReporter
from .exceptions import AuthenticationError, ChatError
from .hooks import PersistenceSink, SendObserver
from .logger import get_logger, log_security_event, log_websocket_event
from .message_router import MessageRouter
from .models import ChatMessage, ClientConnection, ErrorNotification, Session
from .session_auth import SessionAuthenticator, SessionStore

logger = get_logger()


@dataclass
class RelayState:
    """Shared mutable state handed to every event handler"""
    connections: ConnectionDirectory = field(default_factory=ConnectionDirectory)
    dialogs: Optional[DialogDirectory] = None


class ChatRelay:
    """Entry point for transport events"""

    def __init__(
        self,
        session_store: SessionStore,
        dialog_repository: DialogRepository,
        persistence: Optional[PersistenceSink] = None,
        observer: Optional[SendObserver] = None,
        chat_log: Optional[logging.Logger] = None,
        close_superseded: bool = CLOSE_SUPERSEDED_CONNECTIONS,
        **router_options,
    ):
        self.state = RelayState(dialogs=DialogDirectory(dialog_repository))
        self.authenticator = SessionAuthenticator(session_store)
        self.router = MessageRouter(
            self.state.connections,
            self.state.dialogs,
            persistence=persistence,
            observer=observer,
            **router_options,
        )
        self.reporter = ErrorReporter(self.state.connections, self.state.dialogs, chat_log=chat_log)
        self.close_superseded = close_superseded

    async def on_open(self, connection: ClientConnection, query: Optional[str]) -> Optional[Session]:
        """
        Authenticate a new connection and register it

        Authentication failures are reported to the connection, which is then
        closed.

        Returns:
            The Session, or None if the connection was rejected
        """
        try:
            session = await self.authenticator.authenticate(query, connection)
        except AuthenticationError as e:
            log_security_event("authentication_failed", {
                "connection": connection.connection_id,
                "ip": connection.ip_address,
                "reason": e.message,
            })
            await self.reporter.report(e)
            await self._close(connection, AUTH_FAILED_CLOSE_CODE, "Authentication failed")
            return None

        superseded = await self.state.connections.register(session.user_id, session, connection)
        if superseded is not None and self.close_superseded:
            await self._retire(superseded)

        log_websocket_event("authenticated", connection.connection_id, f"user={session.user_id}")
        return session

    async def on_message(self, connection: ClientConnection, raw_message: Any) -> Optional[ChatMessage]:
        """
        Route an inbound frame, reporting any failure; the connection stays open

        Returns:
            The delivered message, or None if routing failed
        """
        try:
            return await self.router.route(connection, raw_message)
        except ChatError as e:
            await self.reporter.report(e)
            return None

    async def on_close(self, connection: ClientConnection) -> Optional[Any]:
        user_id = await self.state.connections.unregister(connection)
        log_websocket_event("closed", connection.connection_id, f"user={user_id}")
        return user_id

    async def on_error(self, connection: ClientConnection, error: BaseException):
        logger.error(f"Transport error on {connection.connection_id}: {error!r}")
        await self._close(connection, 1011, "Internal error")
        await self.on_close(connection)

    async def report(self, error: ChatError) -> int:
        return await self.reporter.report(error)

    async def _retire(self, connection: ClientConnection):
        try:
            await connection.send_json(ErrorNotification(text=ERROR_MESSAGES["superseded"]).to_dict())
        except Exception as e:
            logger.debug(f"Superseded connection {connection.connection_id} unreachable: {e!r}")
        await self._close(connection, SUPERSEDED_CLOSE_CODE, "Superseded")

    async def _close(self, connection: ClientConnection, code: int, reason: str):
        try:
            await connection.close(code=code, reason=reason)
        except Exception as e:
            logger.debug(f"Close failed for {connection.connection_id}: {e!r}")

    async def get_stats(self) -> Dict[str, Any]:
        return {
            "connections": await self.state.connections.get_connection_stats(),
            "dialogs": self.state.dialogs.get_dialog_stats(),
        }
