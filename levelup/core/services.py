"""Process-wide service wiring.

Clients are built once at startup and kept on `app.state`; route dependencies
read them from there, so tests swap in fakes by assigning to `app.state`.
"""
import logging

from fastapi import FastAPI, Request

from levelup.core.config import Settings
from levelup.core.security import build_identity_provider
from levelup.db.sessions import SessionLocal
from levelup.services.audio_service import AudioGenerator
from levelup.services.chat_context import ChatContextBuilder
from levelup.services.chat_relay import ChatRelay, SessionLocks
from levelup.services.chat_sessions import ChatSessionService
from levelup.services.openai_service import (
    build_chat_provider,
    build_openai_client,
    build_speech_provider,
)
from levelup.services.storage import ContentStore

logger = logging.getLogger(__name__)


def wire_services(app: FastAPI, settings: Settings) -> None:
    """Wire all singleton services into app.state on startup."""
    logger.info("Wiring global services...")

    app.state.settings = settings
    app.state.session_factory = SessionLocal
    app.state.identity_provider = build_identity_provider(settings)

    app.state.openai_client = build_openai_client(settings)
    app.state.chat_provider = build_chat_provider(settings, app.state.openai_client)
    app.state.speech_provider = build_speech_provider(settings, app.state.openai_client)

    app.state.context_builder = ChatContextBuilder(excerpt_chars=settings.CHAT_EXCERPT_CHARS)
    app.state.session_locks = SessionLocks()

    logger.info(
        "Service wiring completed (auth=%s, chat=%s)",
        settings.AUTH_PROVIDER,
        type(app.state.chat_provider).__name__,
    )


async def close_services(app: FastAPI) -> None:
    client = getattr(app.state, "openai_client", None)
    if client is not None:
        await client.close()


def get_chat_relay(request: Request) -> ChatRelay:
    state = request.app.state
    return ChatRelay(
        store=ContentStore(state.session_factory),
        provider=state.chat_provider,
        builder=state.context_builder,
        locks=state.session_locks,
    )


def get_session_service(request: Request) -> ChatSessionService:
    state = request.app.state
    return ChatSessionService(
        store=ContentStore(state.session_factory),
        provider=state.chat_provider,
        locks=state.session_locks,
        name_max_length=state.settings.SESSION_NAME_MAX_LENGTH,
    )


def get_audio_generator_for(app: FastAPI) -> AudioGenerator:
    state = app.state
    return AudioGenerator(
        state.speech_provider,
        audio_dir=state.settings.AUDIO_DIR,
        url_prefix=state.settings.AUDIO_URL_PREFIX,
        max_input_chars=state.settings.TTS_MAX_INPUT_CHARS,
    )


def get_audio_generator(request: Request) -> AudioGenerator:
    return get_audio_generator_for(request.app)
