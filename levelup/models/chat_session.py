"""ChatSession model."""
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Integer, ForeignKey, JSON, UniqueConstraint
from levelup.db.base import Base


class ChatSession(Base):
    """A user-owned conversation.

    `messages` is the ordered list of `{"role", "content", "timestamp"}` dicts.
    It is always replaced as a whole so the JSON column change is detected.
    """

    __tablename__ = "chat_sessions"
    __table_args__ = (
        UniqueConstraint("user_id", "session_id", name="chat_sessions_user_session_unique"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    session_id = Column(String(64), nullable=False, index=True)
    name = Column(String, nullable=False)
    summary = Column(String)
    messages = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
