"""
SQLite storage for dialog membership lookups and delivered messages
"""

import json
from typing import Any, Dict, List, Optional

import aiosqlite

from .constants import CHAT_DB_PATH
from .logger import get_logger, log_message_event
from .models import ChatMessage, encode_frame

logger = get_logger()

SCHEMA = """
CREATE TABLE IF NOT EXISTS dialogs (
    id INTEGER PRIMARY KEY,
    users TEXT NOT NULL DEFAULT '[]'
);
CREATE TABLE IF NOT EXISTS messages (
    message_id TEXT PRIMARY KEY,
    dialog_id INTEGER NOT NULL,
    sender_id TEXT NOT NULL,
    text TEXT NOT NULL,
    payload TEXT NOT NULL,
    created_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS unread_messages (
    message_id TEXT NOT NULL,
    user_id TEXT NOT NULL,
    PRIMARY KEY (message_id, user_id)
);
"""


class SqliteChatStore:
    """
    Dialog lookup and message persistence backed by aiosqlite.

    Acts as both the DialogRepository of the dialog directory and the
    PersistenceSink of the router. Dialog rows are written by the web
    application; this store only reads them.
    """

    def __init__(self, path: str = CHAT_DB_PATH):
        self.path = path
        self._db: Optional[aiosqlite.Connection] = None

    async def connect(self):
        if self._db is None:
            self._db = await aiosqlite.connect(self.path)
            self._db.row_factory = aiosqlite.Row
            await self._db.executescript(SCHEMA)
            await self._db.commit()
            logger.info(f"Chat store opened: {self.path}")
        return self

    async def close(self):
        if self._db is not None:
            await self._db.close()
            self._db = None

    @property
    def db(self) -> aiosqlite.Connection:
        if self._db is None:
            raise RuntimeError("SqliteChatStore.connect() has not been awaited")
        return self._db

    async def lookup_dialog(self, dialog_id: Any) -> Optional[Dict[str, Any]]:
        async with self.db.execute("SELECT id, users FROM dialogs WHERE id = ?", (dialog_id,)) as cursor:
            row = await cursor.fetchone()
        if row is None:
            return None
        return {"id": row["id"], "users": row["users"]}

    async def _insert_message(self, message: ChatMessage):
        await self.db.execute(
            "INSERT OR REPLACE INTO messages(message_id, dialog_id, sender_id, text, payload, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (
                message.message_id,
                message.dialog_id,
                str(message.sender.user_id),
                message.text,
                encode_frame(message.to_dict()),
                message.created_at.isoformat(),
            ),
        )

    async def plain_save(self, message: ChatMessage) -> None:
        await self._insert_message(message)
        await self.db.commit()
        log_message_event(message.dialog_id, message.sender.user_id, "saved", f"id={message.message_id[:8]}...")

    async def unread_save(self, message: ChatMessage, unread_user_ids: List[Any]) -> None:
        await self._insert_message(message)
        await self.db.executemany(
            "INSERT OR IGNORE INTO unread_messages(message_id, user_id) VALUES (?, ?)",
            [(message.message_id, str(user_id)) for user_id in unread_user_ids],
        )
        await self.db.commit()
        log_message_event(message.dialog_id, message.sender.user_id, "saved_unread",
                          f"id={message.message_id[:8]}... | unread={len(unread_user_ids)}")

    async def unread_for(self, user_id: Any) -> List[Dict[str, Any]]:
        """Messages a user has not received live, oldest first"""
        async with self.db.execute(
            "SELECT m.payload FROM messages m JOIN unread_messages u ON u.message_id = m.message_id "
            "WHERE u.user_id = ? ORDER BY m.created_at",
            (str(user_id),),
        ) as cursor:
            rows = await cursor.fetchall()
        return [json.loads(row["payload"]) for row in rows]


class InMemoryDialogRepository:
    """Dialog lookup over a plain dict of rows"""

    def __init__(self, dialogs: Optional[Dict[Any, List[Any]]] = None):
        self.dialogs: Dict[Any, List[Any]] = dict(dialogs or {})
        self.lookups = 0

    async def lookup_dialog(self, dialog_id: Any) -> Optional[Dict[str, Any]]:
        self.lookups += 1
        members = self.dialogs.get(dialog_id)
        if members is None:
            return None
        return {"id": dialog_id, "users": json.dumps(members)}
