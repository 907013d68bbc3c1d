"""AI chat routes."""
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, status
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from levelup.core.security import get_current_user
from levelup.core.services import get_chat_relay, get_session_service
from levelup.models.user import User
from levelup.services.chat_relay import ChatRelay
from levelup.services.chat_sessions import ChatSessionService, session_summary
from levelup.services.storage import StoredSession
from levelup.utils.sse import SSE_HEADERS


router = APIRouter(prefix="/api/chat", tags=["Chat"])


# Request/Response schemas
class MessageIn(BaseModel):
    role: str = "user"
    content: str = ""
    timestamp: Optional[str] = None


class ChatRequest(BaseModel):
    message: Optional[str] = None
    sessionId: Optional[str] = None


class StreamChatRequest(BaseModel):
    message: Optional[str] = None
    messages: Optional[List[MessageIn]] = None
    sessionId: Optional[str] = None


class ChatResponse(BaseModel):
    message: str


class CreateSessionRequest(BaseModel):
    name: Optional[str] = None
    summary: Optional[str] = None


class RenameSessionRequest(BaseModel):
    name: Optional[str] = None
    summary: Optional[str] = None


class GenerateNameRequest(BaseModel):
    messages: List[MessageIn] = []


class GenerateNameResponse(BaseModel):
    name: str


class SessionResponse(BaseModel):
    id: str
    name: str
    summary: Optional[str] = None


class SessionDetailResponse(SessionResponse):
    messages: List[Dict[str, Any]]
    createdAt: Optional[str] = None
    updatedAt: Optional[str] = None


def _detail(session: StoredSession) -> SessionDetailResponse:
    return SessionDetailResponse(
        **session_summary(session),
        messages=session.messages,
        createdAt=session.created_at.isoformat() if session.created_at else None,
        updatedAt=session.updated_at.isoformat() if session.updated_at else None,
    )


@router.post("", response_model=ChatResponse)
async def chat(
    body: ChatRequest,
    current_user: User = Depends(get_current_user),
    relay: ChatRelay = Depends(get_chat_relay),
):
    """Send one message and wait for the complete reply."""
    reply = await relay.send(current_user.id, body.sessionId, body.message)
    return ChatResponse(message=reply)


@router.post("/stream")
async def chat_stream(
    body: StreamChatRequest,
    current_user: User = Depends(get_current_user),
    relay: ChatRelay = Depends(get_chat_relay),
):
    """
    Send one message and stream the reply as Server-Sent Events.

    Each token arrives as `data: {"token": ...}`, the stream ends with
    `data: [DONE]`, or with a single `data: {"error": ...}` on failure.
    """
    message = body.message
    if message is None and body.messages:
        message = next((m.content for m in reversed(body.messages) if m.role == "user"), None)

    events = await relay.open_stream(current_user.id, body.sessionId, message)
    return StreamingResponse(events, media_type="text/event-stream", headers=SSE_HEADERS)


@router.post("/session", response_model=SessionResponse, status_code=status.HTTP_201_CREATED)
async def create_session(
    body: Optional[CreateSessionRequest] = None,
    current_user: User = Depends(get_current_user),
    sessions: ChatSessionService = Depends(get_session_service),
):
    body = body or CreateSessionRequest()
    session = await sessions.create(current_user.id, body.name, body.summary)
    return SessionResponse(**session_summary(session))


@router.get("/sessions", response_model=List[SessionResponse])
async def list_sessions(
    current_user: User = Depends(get_current_user),
    sessions: ChatSessionService = Depends(get_session_service),
):
    return [SessionResponse(**session_summary(s)) for s in await sessions.list_sessions(current_user.id)]


@router.get("/session/{session_id}", response_model=SessionDetailResponse)
async def get_session(
    session_id: str,
    current_user: User = Depends(get_current_user),
    sessions: ChatSessionService = Depends(get_session_service),
):
    return _detail(await sessions.get(current_user.id, session_id))


@router.patch("/session/{session_id}", response_model=SessionResponse)
async def rename_session(
    session_id: str,
    body: RenameSessionRequest,
    current_user: User = Depends(get_current_user),
    sessions: ChatSessionService = Depends(get_session_service),
):
    session = await sessions.rename(current_user.id, session_id, body.name, body.summary)
    return SessionResponse(**session_summary(session))


@router.get("/history/{session_id}", response_model=List[Dict[str, Any]])
async def chat_history(
    session_id: str,
    current_user: User = Depends(get_current_user),
    sessions: ChatSessionService = Depends(get_session_service),
):
    session = await sessions.get(current_user.id, session_id)
    return session.messages


@router.delete("/session/{session_id}")
async def delete_session(
    session_id: str,
    current_user: User = Depends(get_current_user),
    sessions: ChatSessionService = Depends(get_session_service),
):
    await sessions.delete(current_user.id, session_id)
    return {"success": True}


@router.post("/session/{session_id}/generate-name", response_model=GenerateNameResponse)
async def generate_session_name(
    session_id: str,
    body: GenerateNameRequest,
    current_user: User = Depends(get_current_user),
    sessions: ChatSessionService = Depends(get_session_service),
):
    messages = [m.model_dump() for m in body.messages]
    name = await sessions.generate_name(current_user.id, session_id, messages)
    return GenerateNameResponse(name=name)
