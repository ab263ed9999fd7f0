"""
Thread-safe directory of live connections and their sessions
"""

import asyncio
from typing import Any, Dict, Iterable, List, Optional, Tuple
from .models import ClientConnection, Session
from .logger import get_logger, log_connection_event

logger = get_logger()


class ConnectionDirectory:
    """
    Bidirectional user <-> connection map plus the session of each user.

    One lock guards the forward map, the reverse map and the session table so
    the three always share the same set of users.
    """

    def __init__(self):
        # user_id -> ClientConnection
        self._connections: Dict[Any, ClientConnection] = {}
        # ClientConnection -> user_id
        self._users: Dict[ClientConnection, Any] = {}
        # user_id -> Session
        self._sessions: Dict[Any, Session] = {}
        self._lock = asyncio.Lock()

    async def register(self, user_id: Any, session: Session,
                       connection: ClientConnection) -> Optional[ClientConnection]:
        """
        Register an authenticated connection for a user

        Args:
            user_id: Authenticated user identity
            session: Session resolved for the user
            connection: Live connection

        Returns:
            The connection previously registered for this user, if it was a
            different one. It is no longer in the directory.
        """
        async with self._lock:
            previous = self._connections.get(user_id)
            if previous is not None and previous is not connection:
                self._users.pop(previous, None)
            else:
                previous = None

            # A connection re-authenticating as another user drops its old entry
            old_user = self._users.get(connection)
            if old_user is not None and old_user != user_id:
                self._connections.pop(old_user, None)
                self._sessions.pop(old_user, None)

            self._connections[user_id] = connection
            self._users[connection] = user_id
            self._sessions[user_id] = session

        log_connection_event(user_id, "connect", connection.connection_id, connection.ip_address)
        if previous is not None:
            log_connection_event(user_id, "superseded", previous.connection_id, previous.ip_address)
        return previous

    async def unregister(self, connection: ClientConnection) -> Optional[Any]:
        """
        Remove a connection and its user's session

        Returns:
            The user the connection belonged to, or None if it was not registered
        """
        async with self._lock:
            user_id = self._users.pop(connection, None)
            if user_id is None:
                return None
            self._connections.pop(user_id, None)
            self._sessions.pop(user_id, None)

        log_connection_event(user_id, "disconnect", connection.connection_id, connection.ip_address)
        return user_id

    async def lookup_user_by_connection(self, connection: ClientConnection) -> Optional[Any]:
        async with self._lock:
            return self._users.get(connection)

    async def connection_for(self, user_id: Any) -> Optional[ClientConnection]:
        async with self._lock:
            return self._connections.get(user_id)

    async def session_for(self, user_id: Any) -> Optional[Session]:
        async with self._lock:
            return self._sessions.get(user_id)

    async def connections_for(self, user_ids: Iterable[Any]) -> Tuple[List[Tuple[Any, ClientConnection]], List[Any]]:
        """
        Split users into online and offline with a single consistent snapshot

        Args:
            user_ids: Users to look up, in delivery order

        Returns:
            Tuple of ([(user_id, connection), ...] for online users, [user_id, ...] for offline users)
        """
        online = []
        offline = []
        async with self._lock:
            for user_id in user_ids:
                connection = self._connections.get(user_id)
                if connection is not None:
                    online.append((user_id, connection))
                else:
                    offline.append(user_id)
        return online, offline

    async def get_connection_stats(self) -> Dict[str, int]:
        """
        Get overall connection statistics

        Returns:
            Dictionary with connection stats
        """
        async with self._lock:
            return {
                "total_connections": len(self._connections),
                "total_sessions": len(self._sessions),
            }
