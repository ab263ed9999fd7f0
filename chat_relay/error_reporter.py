"""
Delivery of ChatError notifications to the narrowest available audience
"""

import logging
from typing import List, Optional

from .connection_directory import ConnectionDirectory
from .dialog_directory import DialogDirectory
from .exceptions import ChatError
from .logger import get_chat_log, get_logger
from .models import ClientConnection, ErrorNotification

logger = get_logger()


class ErrorReporter:
    """
    Turns a ChatError into a system notification.

    Target priority is connection, then user, then dialog; only the first
    available one is used. Errors without any scope go to the chat log.
    """

    def __init__(self, connections: ConnectionDirectory, dialogs: DialogDirectory,
                 chat_log: Optional[logging.Logger] = None):
        self.connections = connections
        self.dialogs = dialogs
        self.chat_log = chat_log or get_chat_log()

    async def report(self, error: ChatError) -> int:
        """
        Report an error to its audience

        Args:
            error: Failure to report

        Returns:
            Number of connections notified
        """
        if not error.message:
            return 0

        if not error.has_scope:
            self.chat_log.error(error.message)
            return 0

        targets = await self._targets(error)
        if not targets:
            logger.warning(f"No live audience for error: {error!r}")
            return 0

        notification = ErrorNotification(text=error.message).to_dict()
        sent = 0
        for connection in targets:
            try:
                await connection.send_json(notification)
                sent += 1
            except Exception as e:
                logger.error(f"Failed to send error notification to {connection.connection_id}: {e!r}")

        logger.info(f"Error notification sent: {error.message} to {sent} connection(s)")
        return sent

    async def _targets(self, error: ChatError) -> List[ClientConnection]:
        if error.connection is not None:
            return [error.connection]

        if error.user_id:
            connection = await self.connections.connection_for(error.user_id)
            if connection is not None:
                return [connection]

        if not error.dialog_id:
            return []
        dialog = self.dialogs.cached_info(error.dialog_id)
        if dialog is None:
            return []
        online, _ = await self.connections.connections_for(dialog.members)
        return [connection for _, connection in online]
