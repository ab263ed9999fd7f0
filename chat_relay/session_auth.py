"""
Session authentication against the shared web session store
"""

from typing import Any, Dict, Optional, Protocol, Union

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from .constants import (
    REDIS_URL,
    SESSION_KEY_NAMESPACE,
    SESSION_QUERY_PARAM,
    SESSION_USER_FIELD,
    ERROR_MESSAGES,
)
from .exceptions import AuthenticationError, SessionDecodeError, SessionStoreUnavailable
from .logger import get_logger, log_security_event
from .models import Session
from .session_codec import decode_session_blob
from .validators import extract_session_key, normalize_id

logger = get_logger()

SessionBlob = Union[bytes, str]


class SessionStore(Protocol):
    async def get(self, key: str) -> Optional[SessionBlob]:
        ...


class RedisSessionStore:
    """Session store backed by Redis, reached over a Unix socket or TCP URL"""

    def __init__(self, url: str = REDIS_URL, client: Optional[aioredis.Redis] = None):
        self.url = url
        self._client = client

    def _connection(self) -> aioredis.Redis:
        if self._client is None:
            self._client = aioredis.Redis.from_url(self.url)
        return self._client

    async def get(self, key: str) -> Optional[SessionBlob]:
        try:
            return await self._connection().get(key)
        except RedisError as e:
            logger.error(f"Session store lookup failed: {e}")
            raise SessionStoreUnavailable(str(e)) from e

    async def ping(self) -> bool:
        try:
            return bool(await self._connection().ping())
        except RedisError:
            return False

    async def close(self):
        if self._client is not None:
            await self._client.aclose()
            self._client = None


class InMemorySessionStore:
    """Dictionary-backed session store for local runs and tests"""

    def __init__(self, sessions: Optional[Dict[str, SessionBlob]] = None):
        self._sessions: Dict[str, SessionBlob] = dict(sessions or {})
        self.available = True

    def put(self, key: str, blob: SessionBlob):
        self._sessions[key] = blob

    async def get(self, key: str) -> Optional[SessionBlob]:
        if not self.available:
            raise SessionStoreUnavailable("in-memory store disabled")
        return self._sessions.get(key)


class SessionAuthenticator:
    """Resolves a handshake query into an authenticated Session"""

    def __init__(self, store: SessionStore, namespace: str = SESSION_KEY_NAMESPACE,
                 query_param: str = SESSION_QUERY_PARAM):
        self.store = store
        self.namespace = namespace
        self.query_param = query_param

    def session_key(self, session_id: str) -> str:
        return f"{self.namespace}:{session_id}"

    async def authenticate(self, query: Optional[str], connection: Any = None) -> Session:
        """
        Authenticate a connection from its handshake query string

        Args:
            query: Raw query string of the websocket handshake
            connection: Connection being authenticated, bound to any failure

        Returns:
            Session carrying the user identity

        Raises:
            AuthenticationError: scoped to the connection
        """
        session_id = extract_session_key(query, self.query_param)
        if not session_id:
            raise AuthenticationError(ERROR_MESSAGES["missing_session"], connection)

        try:
            blob = await self.store.get(self.session_key(session_id))
        except SessionStoreUnavailable:
            raise AuthenticationError(ERROR_MESSAGES["store_unavailable"], connection) from None

        if not blob:
            log_security_event("session_not_found", {"namespace": self.namespace})
            raise AuthenticationError(ERROR_MESSAGES["session_not_found"], connection)

        try:
            record = decode_session_blob(blob)
        except SessionDecodeError as e:
            log_security_event("session_undecodable", {"error": str(e)})
            raise AuthenticationError(ERROR_MESSAGES["session_undecodable"], connection) from e

        user_id = normalize_id(record.get(SESSION_USER_FIELD))
        if user_id is None:
            raise AuthenticationError(ERROR_MESSAGES["missing_user"], connection)

        return Session(user_id=user_id, data=record)
