# tests/test_storage.py
import json

import pytest

from chat_relay import ChatMessage, DialogDirectory, Session, SqliteChatStore


async def open_store(tmp_path):
    store = await SqliteChatStore(str(tmp_path / "chat.db")).connect()
    await store.db.execute("INSERT INTO dialogs(id, users) VALUES (?, ?)", (42, json.dumps([1, 2, 3])))
    await store.db.commit()
    return store


def make_message(text="hi"):
    return ChatMessage(
        dialog_id=42,
        text=text,
        sender=Session(user_id=1, data={"name": "Alice"}),
        fields={"dialogId": 42, "text": text},
    )


@pytest.mark.asyncio
async def test_lookup_dialog(tmp_path):
    store = await open_store(tmp_path)
    try:
        assert await store.lookup_dialog(42) == {"id": 42, "users": "[1, 2, 3]"}
        assert await store.lookup_dialog(7) is None

        info = await DialogDirectory(store).info_for(42)
        assert info.members == (1, 2, 3)
    finally:
        await store.close()


@pytest.mark.asyncio
async def test_plain_save_stores_message_without_unread(tmp_path):
    store = await open_store(tmp_path)
    try:
        message = make_message("всем привет")
        await store.plain_save(message)

        async with store.db.execute("SELECT sender_id, text, payload FROM messages") as cursor:
            rows = await cursor.fetchall()
        assert len(rows) == 1
        assert rows[0]["sender_id"] == "1"
        assert rows[0]["text"] == "всем привет"
        assert json.loads(rows[0]["payload"])["from"]["name"] == "Alice"
        assert await store.unread_for(2) == []
    finally:
        await store.close()


@pytest.mark.asyncio
async def test_unread_save_records_offline_members(tmp_path):
    store = await open_store(tmp_path)
    try:
        message = make_message()
        await store.unread_save(message, [2, 3])

        pending = await store.unread_for(3)
        assert [m["text"] for m in pending] == ["hi"]
        assert await store.unread_for(1) == []
    finally:
        await store.close()


@pytest.mark.asyncio
async def test_store_requires_connect(tmp_path):
    store = SqliteChatStore(str(tmp_path / "chat.db"))
    with pytest.raises(RuntimeError):
        await store.lookup_dialog(1)
