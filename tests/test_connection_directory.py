# tests/test_connection_directory.py
import asyncio
import random

import pytest

from chat_relay import ConnectionDirectory, Session


@pytest.mark.asyncio
async def test_register_and_lookup(make_connection):
    directory = ConnectionDirectory()
    conn = make_connection()
    session = Session(user_id=1, data={"name": "Alice"})

    assert await directory.register(1, session, conn) is None
    assert await directory.lookup_user_by_connection(conn) == 1
    assert await directory.connection_for(1) is conn
    assert await directory.session_for(1) is session


@pytest.mark.asyncio
async def test_unregister_removes_forward_and_reverse_entries(make_connection):
    directory = ConnectionDirectory()
    conn = make_connection()
    await directory.register(1, Session(user_id=1), conn)

    assert await directory.unregister(conn) == 1
    assert await directory.lookup_user_by_connection(conn) is None
    assert await directory.connection_for(1) is None
    assert await directory.session_for(1) is None
    assert await directory.get_connection_stats() == {"total_connections": 0, "total_sessions": 0}


@pytest.mark.asyncio
async def test_unregister_unknown_connection_is_noop(make_connection):
    directory = ConnectionDirectory()
    await directory.register(1, Session(user_id=1), make_connection())
    assert await directory.unregister(make_connection()) is None
    assert (await directory.get_connection_stats())["total_connections"] == 1


@pytest.mark.asyncio
async def test_reregistering_user_replaces_previous_connection(make_connection):
    directory = ConnectionDirectory()
    old, new = make_connection(), make_connection()
    await directory.register(1, Session(user_id=1, data={"v": 1}), old)

    superseded = await directory.register(1, Session(user_id=1, data={"v": 2}), new)

    assert superseded is old
    assert await directory.connection_for(1) is new
    assert await directory.lookup_user_by_connection(old) is None
    assert (await directory.session_for(1)).data == {"v": 2}

    # Closing the superseded socket later must not drop the new mapping
    assert await directory.unregister(old) is None
    assert await directory.connection_for(1) is new


@pytest.mark.asyncio
async def test_same_connection_reregistered_is_not_superseded(make_connection):
    directory = ConnectionDirectory()
    conn = make_connection()
    await directory.register(1, Session(user_id=1), conn)
    assert await directory.register(1, Session(user_id=1), conn) is None


@pytest.mark.asyncio
async def test_connections_for_splits_online_and_offline(make_connection):
    directory = ConnectionDirectory()
    c1, c2 = make_connection(), make_connection()
    await directory.register(1, Session(user_id=1), c1)
    await directory.register(2, Session(user_id=2), c2)

    online, offline = await directory.connections_for([1, 3, 2, 4])

    assert online == [(1, c1), (2, c2)]
    assert offline == [3, 4]


async def assert_maps_agree(directory):
    async with directory._lock:
        assert set(directory._connections) == set(directory._users.values()) == set(directory._sessions)
        for user_id, connection in directory._connections.items():
            assert directory._users[connection] == user_id
            assert directory._sessions[user_id].user_id == user_id
        for connection, user_id in directory._users.items():
            assert directory._connections[user_id] is connection


@pytest.mark.asyncio
async def test_maps_stay_consistent_under_concurrent_churn(make_connection):
    directory = ConnectionDirectory()
    connections = [make_connection() for _ in range(12)]
    users = [1, 2, 3, 4, 5]

    async def worker(seed):
        rng = random.Random(seed)
        for _ in range(200):
            connection = rng.choice(connections)
            action = rng.random()
            if action < 0.5:
                user_id = rng.choice(users)
                await directory.register(user_id, Session(user_id=user_id), connection)
            elif action < 0.8:
                await directory.unregister(connection)
            else:
                await directory.connections_for(users)
            await asyncio.sleep(0)

    async def checker():
        for _ in range(200):
            await assert_maps_agree(directory)
            await asyncio.sleep(0)

    await asyncio.gather(*(worker(seed) for seed in range(8)), checker())

    await assert_maps_agree(directory)
    stats = await directory.get_connection_stats()
    assert stats["total_connections"] == stats["total_sessions"] <= len(users)


@pytest.mark.asyncio
async def test_reauthentication_as_other_user_keeps_maps_consistent(make_connection):
    directory = ConnectionDirectory()
    shared = make_connection()
    other = make_connection()

    await asyncio.gather(
        directory.register(1, Session(user_id=1), shared),
        directory.register(2, Session(user_id=2), shared),
        directory.register(2, Session(user_id=2), other),
        directory.unregister(other),
    )

    await assert_maps_agree(directory)
    assert await directory.connection_for(1) is None
    assert await directory.lookup_user_by_connection(other) is None
