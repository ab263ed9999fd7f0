# tests/test_error_reporter.py
import logging

import pytest

from chat_relay import AuthorizationError, ChatError, DeliveryError, ValidationError

NOTIFICATION = {"text": "boom", "type": "error", "from": "system"}


@pytest.fixture
def reporter(relay):
    return relay.reporter


@pytest.mark.asyncio
async def test_empty_message_is_ignored(reporter, connect, caplog):
    alice = await connect(1)
    with caplog.at_level(logging.INFO, logger="tests.chat_log"):
        assert await reporter.report(ChatError("", connection=alice)) == 0
    assert alice.websocket.sent == []
    assert [r for r in caplog.records if r.name == "tests.chat_log"] == []


@pytest.mark.asyncio
async def test_unscoped_error_goes_to_chat_log_only(reporter, connect, caplog):
    alice = await connect(1)
    with caplog.at_level(logging.INFO, logger="tests.chat_log"):
        assert await reporter.report(DeliveryError("plain_save hook failed")) == 0

    assert [r.getMessage() for r in caplog.records if r.name == "tests.chat_log"] == ["plain_save hook failed"]
    assert alice.websocket.sent == []


@pytest.mark.asyncio
async def test_connection_scope_is_sent_directly(reporter, make_connection):
    unregistered = make_connection()
    assert await reporter.report(ValidationError("boom", connection=unregistered)) == 1
    assert unregistered.websocket.sent == [NOTIFICATION]


@pytest.mark.asyncio
async def test_connection_takes_precedence_over_user_and_dialog(reporter, relay, connect):
    alice = await connect(1)
    bob = await connect(2)
    await relay.state.dialogs.info_for(42)

    await reporter.report(ChatError("boom", connection=alice, user_id=2, dialog_id=42))

    assert alice.websocket.sent == [NOTIFICATION]
    assert bob.websocket.sent == []


@pytest.mark.asyncio
async def test_user_scope_reaches_live_connection(reporter, relay, connect):
    alice = await connect(1)
    bob = await connect(2)
    await relay.state.dialogs.info_for(42)

    assert await reporter.report(ChatError("boom", user_id=2, dialog_id=42)) == 1

    assert bob.websocket.sent == [NOTIFICATION]
    assert alice.websocket.sent == []


@pytest.mark.asyncio
async def test_offline_user_falls_back_to_dialog(reporter, relay, connect):
    alice = await connect(1)
    bob = await connect(2)
    await relay.state.dialogs.info_for(42)

    assert await reporter.report(ChatError("boom", user_id=3, dialog_id=42)) == 2

    assert alice.websocket.sent == [NOTIFICATION]
    assert bob.websocket.sent == [NOTIFICATION]


@pytest.mark.asyncio
async def test_dialog_scope_reaches_every_online_member(reporter, relay, connect):
    alice = await connect(1)
    dave = await connect(4)
    bob = await connect(2, fail_send=True)
    await relay.state.dialogs.info_for(42)

    assert await reporter.report(AuthorizationError("boom", dialog_id=42)) == 1

    assert alice.websocket.sent == [NOTIFICATION]
    assert dave.websocket.sent == []


@pytest.mark.asyncio
async def test_uncached_dialog_has_no_audience(reporter, connect):
    alice = await connect(1)
    assert await reporter.report(ChatError("boom", dialog_id=42)) == 0
    assert alice.websocket.sent == []


@pytest.mark.asyncio
async def test_failed_direct_send_is_contained(reporter, make_connection):
    broken = make_connection(fail_send=True)
    assert await reporter.report(ChatError("boom", connection=broken)) == 0
