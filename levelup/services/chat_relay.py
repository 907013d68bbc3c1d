"""Chat relay: one chat turn against the upstream chat API.

Turns on the same (user, session) pair are serialized with an in-process lock
held from loading the history to persisting the reply, so two concurrent turns
both end up in the message list instead of the later write replacing the
earlier one. This only holds within a single server process.
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, Dict, List, Optional, Set

from starlette.concurrency import run_in_threadpool

from levelup.core.errors import InvalidRequest, UpstreamUnavailable
from levelup.services.chat_context import ChatContextBuilder
from levelup.services.storage import ContentStore
from levelup.utils.sse import DONE_EVENT, format_event

logger = logging.getLogger(__name__)

STREAM_ERROR_MESSAGE = "Failed to get response"

_END = object()


def make_message(role: str, content: str) -> Dict[str, str]:
    return {"role": role, "content": content, "timestamp": datetime.now(timezone.utc).isoformat()}


def require_text(value: Optional[str], name: str) -> str:
    if value is None or not str(value).strip():
        raise InvalidRequest(f"{name} is required")
    return value


class SessionLocks:
    """
    Process-wide registry of per-session turn locks and in-flight stream tasks.

    A lock entry lives only while some turn holds or waits for it, so the
    registry stays as small as the number of sessions currently in use.
    """

    def __init__(self):
        self._locks: Dict[tuple, asyncio.Lock] = {}
        self._users: Dict[tuple, int] = {}
        self._tasks: Set[asyncio.Task] = set()

    def __len__(self) -> int:
        return len(self._locks)

    async def acquire(self, user_id: str, session_id: str) -> None:
        key = (user_id, session_id)
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._users[key] = self._users.get(key, 0) + 1
        try:
            await lock.acquire()
        except BaseException:
            self._leave(key)
            raise

    def release(self, user_id: str, session_id: str) -> None:
        key = (user_id, session_id)
        self._locks[key].release()
        self._leave(key)

    def _leave(self, key: tuple) -> None:
        self._users[key] -= 1
        if not self._users[key]:
            del self._users[key]
            del self._locks[key]

    @asynccontextmanager
    async def hold(self, user_id: str, session_id: str):
        await self.acquire(user_id, session_id)
        try:
            yield
        finally:
            self.release(user_id, session_id)

    def locked(self, user_id: str, session_id: str) -> bool:
        lock = self._locks.get((user_id, session_id))
        return lock is not None and lock.locked()

    def track(self, task: asyncio.Task) -> None:
        # keep a strong reference until the task finishes
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)


class ChatRelay:
    def __init__(self, store: ContentStore, provider, builder: ChatContextBuilder, locks: SessionLocks):
        self.store = store
        self.provider = provider
        self.builder = builder
        self.locks = locks

    async def _system_prompt(self, user_id: str) -> str:
        chapters, categories, progress = await run_in_threadpool(self.store.load_learning_context, user_id)
        return self.builder.build(chapters, categories, progress)

    @staticmethod
    def _history(messages: List[Dict[str, str]]) -> List[Dict[str, str]]:
        return [{"role": m["role"], "content": m["content"]} for m in messages]

    async def send(self, user_id: str, session_id: str, message: str) -> str:
        """
        Run one non-streaming turn and return the assistant reply.

        The user message is persisted even when the upstream call fails, and
        the failure is re-raised as UpstreamUnavailable.
        """
        message = require_text(message, "message")
        session_id = require_text(session_id, "sessionId")

        async with self.locks.hold(user_id, session_id):
            session = await run_in_threadpool(self.store.load_or_create_session, user_id, session_id)
            messages = session.messages + [make_message("user", message)]
            system_prompt = await self._system_prompt(user_id)

            try:
                reply = await self.provider.complete(system_prompt, self._history(messages))
            except UpstreamUnavailable:
                await run_in_threadpool(self.store.save_messages, user_id, session_id, messages)
                raise

            messages.append(make_message("assistant", reply))
            await run_in_threadpool(self.store.save_messages, user_id, session_id, messages)
            return reply

    async def open_stream(self, user_id: str, session_id: str, message: str) -> AsyncIterator[str]:
        """
        Start a streaming turn and return the iterator of SSE lines.

        Validation, ownership checks and saving the user message happen here,
        before any response bytes are sent. The upstream stream is consumed by
        a background task so a client disconnect does not stop the reply from
        being persisted.
        """
        message = require_text(message, "message")
        session_id = require_text(session_id, "sessionId")

        await self.locks.acquire(user_id, session_id)
        try:
            session = await run_in_threadpool(self.store.load_or_create_session, user_id, session_id)
            messages = session.messages + [make_message("user", message)]
            await run_in_threadpool(self.store.save_messages, user_id, session_id, messages)
            system_prompt = await self._system_prompt(user_id)
        except BaseException:
            self.locks.release(user_id, session_id)
            raise

        queue: asyncio.Queue = asyncio.Queue()
        task = asyncio.create_task(self._pump(user_id, session_id, system_prompt, messages, queue))
        self.locks.track(task)
        return self._drain(queue, task)

    async def _pump(
        self,
        user_id: str,
        session_id: str,
        system_prompt: str,
        messages: List[Dict[str, str]],
        queue: asyncio.Queue,
    ) -> Optional[str]:
        parts: List[str] = []
        try:
            try:
                async for token in self.provider.stream(system_prompt, self._history(messages)):
                    parts.append(token)
                    queue.put_nowait(format_event({"token": token}))
            except Exception:
                logger.exception("Chat stream failed for session %s", session_id)
                queue.put_nowait(format_event({"error": STREAM_ERROR_MESSAGE}))
                return None

            queue.put_nowait(DONE_EVENT)
            reply = "".join(parts)
            try:
                await run_in_threadpool(
                    self.store.save_messages,
                    user_id,
                    session_id,
                    messages + [make_message("assistant", reply)],
                )
            except Exception:
                # the client already has the full reply; nothing left to tell it
                logger.exception("Failed to persist streamed reply for session %s", session_id)
            return reply
        finally:
            queue.put_nowait(_END)
            self.locks.release(user_id, session_id)

    @staticmethod
    async def _drain(queue: asyncio.Queue, task: asyncio.Task) -> AsyncIterator[str]:
        while True:
            event = await queue.get()
            if event is _END:
                break
            yield event
        await task
