"""Relay-level tests for chat turns, streaming and per-session serialization."""
import asyncio
import json
import logging

import pytest

from conftest import FakeChatProvider, ReplyWriteFailingStore
from levelup.core.errors import Forbidden, InvalidRequest, PersistenceFailure, UpstreamUnavailable
from levelup.db.sessions import SessionLocal
from levelup.services.chat_context import ChatContextBuilder
from levelup.services.chat_relay import ChatRelay, SessionLocks
from levelup.services.storage import ContentStore


class SlowChatProvider(FakeChatProvider):
    async def complete(self, system_prompt, messages):
        await asyncio.sleep(0.05)
        return await super().complete(system_prompt, messages)


@pytest.fixture
def store():
    return ContentStore(SessionLocal)


@pytest.fixture
def locks():
    return SessionLocks()


def _relay(store, locks, provider):
    return ChatRelay(store=store, provider=provider, builder=ChatContextBuilder(), locks=locks)


async def _collect(events):
    return [event async for event in events]


class TestSend:
    @pytest.mark.asyncio
    async def test_turn_appends_two_messages(self, store, locks):
        relay = _relay(store, locks, FakeChatProvider())

        reply = await relay.send("user-1", "s1", "How do I delegate?")

        assert reply == "Hello world"
        messages = store.find_session("user-1", "s1").messages
        assert [m["role"] for m in messages] == ["user", "assistant"]
        assert messages[0]["content"] == "How do I delegate?"
        assert all(m["timestamp"] for m in messages)

        await relay.send("user-1", "s1", "Thanks")
        assert len(store.find_session("user-1", "s1").messages) == 4

    @pytest.mark.asyncio
    async def test_history_is_sent_upstream(self, store, locks):
        provider = FakeChatProvider()
        relay = _relay(store, locks, provider)

        await relay.send("user-1", "s1", "first")
        await relay.send("user-1", "s1", "second")

        sent = provider.calls[-1]["messages"]
        assert [m["content"] for m in sent] == ["first", "Hello world", "second"]
        assert "USER'S LEARNING PROGRESS" in provider.calls[-1]["system_prompt"]

    @pytest.mark.asyncio
    async def test_missing_fields_rejected(self, store, locks):
        relay = _relay(store, locks, FakeChatProvider())
        with pytest.raises(InvalidRequest):
            await relay.send("user-1", "s1", "  ")
        with pytest.raises(InvalidRequest):
            await relay.send("user-1", None, "hi")

    @pytest.mark.asyncio
    async def test_upstream_failure_keeps_user_message(self, store, locks):
        relay = _relay(store, locks, FakeChatProvider(fail=True))

        with pytest.raises(UpstreamUnavailable):
            await relay.send("user-1", "s1", "hello?")

        messages = store.find_session("user-1", "s1").messages
        assert [m["role"] for m in messages] == ["user"]

    @pytest.mark.asyncio
    async def test_foreign_session_forbidden(self, store, locks):
        store.create_session("user-2", "s1")
        relay = _relay(store, locks, FakeChatProvider())

        with pytest.raises(Forbidden):
            await relay.send("user-1", "s1", "hi")

    @pytest.mark.asyncio
    async def test_concurrent_turns_are_both_kept(self, store, locks):
        relay = _relay(store, locks, SlowChatProvider())

        await asyncio.gather(
            relay.send("user-1", "s1", "one"),
            relay.send("user-1", "s1", "two"),
        )

        messages = store.find_session("user-1", "s1").messages
        assert len(messages) == 4
        assert sorted(m["content"] for m in messages if m["role"] == "user") == ["one", "two"]


class TestStream:
    @pytest.mark.asyncio
    async def test_event_sequence_and_persisted_reply(self, store, locks):
        relay = _relay(store, locks, FakeChatProvider(tokens=["Hello", " ", "world"]))

        events = await _collect(await relay.open_stream("user-1", "s1", "Hi"))

        assert events == [
            'data: {"token": "Hello"}\n\n',
            'data: {"token": " "}\n\n',
            'data: {"token": "world"}\n\n',
            "data: [DONE]\n\n",
        ]
        messages = store.find_session("user-1", "s1").messages
        assert [(m["role"], m["content"]) for m in messages] == [("user", "Hi"), ("assistant", "Hello world")]

    @pytest.mark.asyncio
    async def test_failure_yields_single_error_event(self, store, locks):
        relay = _relay(store, locks, FakeChatProvider(tokens=["Hel", "lo"], fail_after=1))

        events = await _collect(await relay.open_stream("user-1", "s1", "Hi"))

        assert events[-1] == 'data: {"error": "Failed to get response"}\n\n'
        assert sum(1 for e in events if '"error"' in e) == 1
        assert "data: [DONE]\n\n" not in events
        messages = store.find_session("user-1", "s1").messages
        assert [m["role"] for m in messages] == ["user"]

    @pytest.mark.asyncio
    async def test_lock_released_after_failure(self, store, locks):
        relay = _relay(store, locks, FakeChatProvider(fail=True))
        await _collect(await relay.open_stream("user-1", "s1", "Hi"))

        assert not locks.locked("user-1", "s1")
        assert len(locks) == 0

    @pytest.mark.asyncio
    async def test_reply_persisted_after_client_disconnect(self, store, locks):
        relay = _relay(store, locks, FakeChatProvider(tokens=["a", "b", "c"]))

        events = await relay.open_stream("user-1", "s1", "Hi")
        first = await events.__anext__()
        await events.aclose()

        assert json.loads(first[len("data: "):]) == {"token": "a"}
        # the turn lock is released only once the reply is saved
        async with locks.hold("user-1", "s1"):
            messages = store.find_session("user-1", "s1").messages
        assert messages[-1]["content"] == "abc"

    @pytest.mark.asyncio
    async def test_validation_happens_before_streaming(self, store, locks):
        relay = _relay(store, locks, FakeChatProvider())
        with pytest.raises(InvalidRequest):
            await relay.open_stream("user-1", "s1", "")
        assert not locks.locked("user-1", "s1")
        assert len(locks) == 0


class TestReplyWriteFailure:
    @pytest.mark.asyncio
    async def test_send_raises_persistence_failure(self, locks):
        relay = _relay(ReplyWriteFailingStore(SessionLocal), locks, FakeChatProvider())

        with pytest.raises(PersistenceFailure):
            await relay.send("user-1", "s1", "Hi")

        assert len(locks) == 0

    @pytest.mark.asyncio
    async def test_stream_still_completes_and_logs(self, locks, caplog):
        store = ReplyWriteFailingStore(SessionLocal)
        relay = _relay(store, locks, FakeChatProvider(tokens=["Hello", " ", "world"]))

        with caplog.at_level(logging.ERROR, logger="levelup.services.chat_relay"):
            events = await _collect(await relay.open_stream("user-1", "s1", "Hi"))

        assert events == [
            'data: {"token": "Hello"}\n\n',
            'data: {"token": " "}\n\n',
            'data: {"token": "world"}\n\n',
            "data: [DONE]\n\n",
        ]
        assert "Failed to persist streamed reply for session s1" in caplog.text
        assert [m["role"] for m in store.find_session("user-1", "s1").messages] == ["user"]
        assert not locks.locked("user-1", "s1")


class TestSessionLocks:
    @pytest.mark.asyncio
    async def test_registry_empties_after_finished_turns(self, store, locks):
        relay = _relay(store, locks, FakeChatProvider())

        for i in range(50):
            await relay.send("user-1", f"s{i}", "hi")
        await _collect(await relay.open_stream("user-1", "streamed", "hi"))

        assert len(locks) == 0

    @pytest.mark.asyncio
    async def test_entry_kept_while_a_turn_waits(self, locks):
        async with locks.hold("user-1", "s1"):
            waiter = asyncio.create_task(locks.acquire("user-1", "s1"))
            await asyncio.sleep(0)
            assert len(locks) == 1
        await waiter
        assert locks.locked("user-1", "s1")

        locks.release("user-1", "s1")
        assert len(locks) == 0

    @pytest.mark.asyncio
    async def test_cancelled_waiter_leaves_no_entry(self, locks):
        async with locks.hold("user-1", "s1"):
            waiter = asyncio.create_task(locks.acquire("user-1", "s1"))
            await asyncio.sleep(0)
            waiter.cancel()
            with pytest.raises(asyncio.CancelledError):
                await waiter

        assert len(locks) == 0
