"""Chat session lifecycle: create, list, rename, name generation, delete."""
import logging
import secrets
from datetime import datetime
from typing import Dict, List, Optional

from starlette.concurrency import run_in_threadpool

from levelup.core.errors import InvalidRequest, UpstreamUnavailable
from levelup.services.chat_relay import SessionLocks, require_text
from levelup.services.storage import DEFAULT_SESSION_NAME, ContentStore, StoredSession

logger = logging.getLogger(__name__)

NAMING_PROMPT = (
    "You name chat conversations. Reply with a short descriptive title of 3 to 5 words "
    "for the conversation below. Return only the title, without quotes or punctuation."
)
NAMING_MESSAGE_COUNT = 4
MAX_TITLE_WORDS = 8


def new_session_id() -> str:
    return secrets.token_urlsafe(8)


def fallback_session_name(now: Optional[datetime] = None) -> str:
    return f"Chat {(now or datetime.now()).strftime('%b %d, %H:%M')}"


def clean_title(raw: Optional[str], max_length: int) -> Optional[str]:
    """Strip quotes and whitespace; None when the result is not a usable title."""
    title = (raw or "").strip().strip("\"'`").strip()
    if not title or len(title.split()) > MAX_TITLE_WORDS:
        return None
    return title[:max_length].rstrip()


def session_summary(session: StoredSession) -> Dict[str, Optional[str]]:
    return {"id": session.session_id, "name": session.name, "summary": session.summary}


class ChatSessionService:
    def __init__(self, store: ContentStore, provider, locks: SessionLocks, name_max_length: int = 50):
        self.store = store
        self.provider = provider
        self.locks = locks
        self.name_max_length = name_max_length

    async def create(self, user_id: str, name: Optional[str] = None, summary: Optional[str] = None) -> StoredSession:
        name = (name or "").strip() or DEFAULT_SESSION_NAME
        session = await run_in_threadpool(self.store.create_session, user_id, new_session_id(), name, summary)
        logger.info("Created chat session %s for user %s", session.session_id, user_id)
        return session

    async def list_sessions(self, user_id: str) -> List[StoredSession]:
        return await run_in_threadpool(self.store.list_sessions, user_id)

    async def get(self, user_id: str, session_id: str) -> StoredSession:
        return await run_in_threadpool(self.store.find_session, user_id, session_id)

    async def rename(self, user_id: str, session_id: str, name: Optional[str], summary: Optional[str] = None) -> StoredSession:
        name = require_text(name, "name").strip()
        return await run_in_threadpool(self.store.rename_session, user_id, session_id, name, summary)

    async def generate_name(self, user_id: str, session_id: str, messages: List[Dict[str, str]]) -> str:
        """Ask the chat API for a short title; fall back to a timestamp name."""
        if not messages:
            raise InvalidRequest("messages must not be empty")
        # ownership check before spending an upstream call
        await self.get(user_id, session_id)

        transcript = "\n".join(
            f"{m.get('role', 'user')}: {m.get('content', '')}" for m in messages[:NAMING_MESSAGE_COUNT]
        )
        try:
            raw = await self.provider.complete(NAMING_PROMPT, [{"role": "user", "content": transcript}])
        except UpstreamUnavailable:
            logger.warning("Session name generation failed for %s, using fallback name", session_id)
            raw = None

        name = clean_title(raw, self.name_max_length) or fallback_session_name()
        await run_in_threadpool(self.store.rename_session, user_id, session_id, name)
        return name

    async def delete(self, user_id: str, session_id: str) -> None:
        async with self.locks.hold(user_id, session_id):
            await run_in_threadpool(self.store.delete_session, user_id, session_id)
        logger.info("Deleted chat session %s for user %s", session_id, user_id)
