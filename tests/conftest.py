"""
Pytest configuration and shared fixtures.

The environment is set before anything under `levelup` is imported because
settings, the engine and the static audio mount are created at import time.
"""
import os
import tempfile

_TMP = tempfile.mkdtemp(prefix="levelup-tests-")
TEST_JWT_SECRET = "test-jwt-secret"

os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TMP, 'test.db')}"
os.environ["AUTH_PROVIDER"] = "jwt"
os.environ["SUPABASE_JWT_SECRET"] = TEST_JWT_SECRET
os.environ["OPENAI_API_KEY"] = ""
os.environ["AUDIO_DIR"] = os.path.join(_TMP, "audio")
os.environ["CHAT_CANNED_STREAM_DELAY"] = "0"

from typing import AsyncIterator, Dict, List, Optional

import pytest
from fastapi.testclient import TestClient
from jose import jwt

from levelup.core.errors import PersistenceFailure, UpstreamUnavailable
from levelup.db.base import Base
from levelup.db.sessions import SessionLocal, engine
from levelup.main import app
from levelup.models import Category, Chapter, User, UserProgress
from levelup.services.storage import ContentStore


# ============================================
# Fake providers
# ============================================

class FakeChatProvider:
    """Chat provider that replays scripted tokens and records every call."""

    def __init__(self, tokens: Optional[List[str]] = None, fail: bool = False, fail_after: Optional[int] = None):
        self.tokens = tokens if tokens is not None else ["Hello", " ", "world"]
        self.fail = fail
        self.fail_after = fail_after
        self.calls: List[Dict] = []

    async def complete(self, system_prompt, messages) -> str:
        self.calls.append({"system_prompt": system_prompt, "messages": list(messages)})
        if self.fail:
            raise UpstreamUnavailable()
        return "".join(self.tokens)

    async def stream(self, system_prompt, messages) -> AsyncIterator[str]:
        self.calls.append({"system_prompt": system_prompt, "messages": list(messages)})
        if self.fail:
            raise UpstreamUnavailable()
        for i, token in enumerate(self.tokens):
            if self.fail_after is not None and i >= self.fail_after:
                raise UpstreamUnavailable()
            yield token


class FakeSpeechProvider:
    def __init__(self, audio: bytes = b"ID3fake-mp3"):
        self.audio = audio
        self.calls: List[Dict] = []

    async def synthesize(self, text: str, voice: str = "alloy", hd: bool = False) -> bytes:
        self.calls.append({"text": text, "voice": voice, "hd": hd})
        return self.audio


class ReplyWriteFailingStore(ContentStore):
    """Store whose writes fail once an assistant reply is part of the message list."""

    def save_messages(self, user_id, session_id, messages):
        if messages and messages[-1]["role"] == "assistant":
            raise PersistenceFailure()
        super().save_messages(user_id, session_id, messages)


# ============================================
# Database / app fixtures
# ============================================

@pytest.fixture(autouse=True)
def reset_database():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def chat_provider():
    return FakeChatProvider()


@pytest.fixture
def speech_provider():
    return FakeSpeechProvider()


@pytest.fixture
def client(chat_provider, speech_provider):
    with TestClient(app) as test_client:
        app.state.chat_provider = chat_provider
        app.state.speech_provider = speech_provider
        yield test_client


# ============================================
# Auth helpers
# ============================================

def make_token(user_id: str, email: Optional[str] = None, **metadata) -> str:
    payload = {
        "sub": user_id,
        "email": email or f"{user_id}@example.com",
        "aud": "authenticated",
        "user_metadata": metadata,
    }
    return jwt.encode(payload, TEST_JWT_SECRET, algorithm="HS256")


def auth_headers(user_id: str, **metadata) -> Dict[str, str]:
    return {"Authorization": f"Bearer {make_token(user_id, **metadata)}"}


@pytest.fixture
def user_headers():
    return auth_headers("user-1", first_name="Ada", last_name="Lovelace")


@pytest.fixture
def other_headers():
    return auth_headers("user-2")


@pytest.fixture
def admin_headers(db):
    db.add(User(id="admin-1", email="admin-1@example.com", is_admin=True))
    db.commit()
    return auth_headers("admin-1")


# ============================================
# Content fixtures
# ============================================

@pytest.fixture
def library(db):
    """Two categories with two chapters each."""
    leadership = Category(slug="leadership", title="Leadership", sort_order=1)
    feedback = Category(slug="feedback", title="Feedback", sort_order=2)
    db.add_all([leadership, feedback])
    db.flush()

    chapters = [
        Chapter(slug="first-90-days", title="First 90 Days", content="Start by listening.",
                category_id=leadership.id, chapter_number=1),
        Chapter(slug="delegation", title="Delegation", content="Hand off outcomes, not tasks.",
                category_id=leadership.id, chapter_number=2),
        Chapter(slug="giving-feedback", title="Giving Feedback", content="Be specific and timely.",
                category_id=feedback.id, chapter_number=1),
        Chapter(slug="receiving-feedback", title="Receiving Feedback", content=None,
                category_id=feedback.id, chapter_number=2),
    ]
    db.add_all(chapters)
    db.commit()
    return {
        "categories": {"leadership": leadership.id, "feedback": feedback.id},
        "chapters": {c.slug: c.id for c in chapters},
    }


def complete_chapter(db, user_id: str, chapter_id: int) -> None:
    if not db.query(User).filter(User.id == user_id).first():
        db.add(User(id=user_id, email=f"{user_id}@example.com"))
    db.add(UserProgress(user_id=user_id, chapter_id=chapter_id, completed=True))
    db.commit()
