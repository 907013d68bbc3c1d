"""Storage access for the chat core.

Each method opens its own short-lived ORM session from the process-wide
factory and returns plain snapshots, so calls can run in a worker thread and
outlive the request that started them (streamed replies are persisted after
the response body has been sent).
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from levelup.core.errors import Forbidden, NotFound, PersistenceFailure
from levelup.models import Category, Chapter, ChatSession, UserProgress

logger = logging.getLogger(__name__)

DEFAULT_SESSION_NAME = "New Chat"
SESSION_NOT_FOUND = "Chat session not found"


@dataclass
class StoredSession:
    session_id: str
    user_id: str
    name: str
    summary: Optional[str] = None
    messages: List[Dict[str, Any]] = field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: ChatSession) -> "StoredSession":
        return cls(
            session_id=row.session_id,
            user_id=row.user_id,
            name=row.name,
            summary=row.summary,
            messages=list(row.messages or []),
            created_at=row.created_at,
            updated_at=row.updated_at,
        )


def _owned_session(db: Session, user_id: str, session_id: str) -> ChatSession:
    """Return the caller's session row; 403 for someone else's, 404 if absent."""
    rows = db.query(ChatSession).filter(ChatSession.session_id == session_id).all()
    for row in rows:
        if row.user_id == user_id:
            return row
    if rows:
        raise Forbidden("Access denied")
    raise NotFound(SESSION_NOT_FOUND)


class ContentStore:
    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    # Chat sessions

    def find_session(self, user_id: str, session_id: str) -> StoredSession:
        with self.session_factory() as db:
            return StoredSession.from_row(_owned_session(db, user_id, session_id))

    def create_session(
        self,
        user_id: str,
        session_id: str,
        name: str = DEFAULT_SESSION_NAME,
        summary: Optional[str] = None,
        messages: Optional[List[Dict[str, Any]]] = None,
    ) -> StoredSession:
        with self.session_factory() as db:
            row = ChatSession(
                user_id=user_id,
                session_id=session_id,
                name=name,
                summary=summary,
                messages=list(messages or []),
            )
            db.add(row)
            self._commit(db)
            db.refresh(row)
            return StoredSession.from_row(row)

    def load_or_create_session(self, user_id: str, session_id: str) -> StoredSession:
        try:
            return self.find_session(user_id, session_id)
        except NotFound:
            logger.info("Creating chat session %s for user %s on first message", session_id, user_id)
            return self.create_session(user_id, session_id)

    def save_messages(self, user_id: str, session_id: str, messages: List[Dict[str, Any]]) -> None:
        """Replace the session's message list in one write, creating the row if needed."""
        with self.session_factory() as db:
            try:
                row = _owned_session(db, user_id, session_id)
            except NotFound:
                row = ChatSession(user_id=user_id, session_id=session_id, name=DEFAULT_SESSION_NAME)
                db.add(row)
            row.messages = list(messages)
            row.updated_at = datetime.utcnow()
            self._commit(db)

    def rename_session(self, user_id: str, session_id: str, name: str, summary: Optional[str] = None) -> StoredSession:
        with self.session_factory() as db:
            row = _owned_session(db, user_id, session_id)
            row.name = name
            if summary is not None:
                row.summary = summary
            row.updated_at = datetime.utcnow()
            self._commit(db)
            db.refresh(row)
            return StoredSession.from_row(row)

    def list_sessions(self, user_id: str) -> List[StoredSession]:
        with self.session_factory() as db:
            rows = (
                db.query(ChatSession)
                .filter(ChatSession.user_id == user_id)
                .order_by(ChatSession.updated_at.desc(), ChatSession.id.desc())
                .all()
            )
            return [StoredSession.from_row(r) for r in rows]

    def delete_session(self, user_id: str, session_id: str) -> None:
        with self.session_factory() as db:
            row = _owned_session(db, user_id, session_id)
            db.delete(row)
            self._commit(db)

    # Chat context inputs

    def load_learning_context(self, user_id: str) -> Tuple[List[Chapter], List[Category], List[UserProgress]]:
        with self.session_factory() as db:
            chapters = db.query(Chapter).order_by(Chapter.category_id, Chapter.chapter_number, Chapter.id).all()
            categories = db.query(Category).order_by(Category.sort_order).all()
            progress = db.query(UserProgress).filter(UserProgress.user_id == user_id).all()
            # rows stay readable after the session closes
            db.expunge_all()
            return chapters, categories, progress

    @staticmethod
    def _commit(db: Session) -> None:
        try:
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            logger.exception("Database write failed")
            raise PersistenceFailure() from exc
