"""SharedChapter model."""
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Integer, ForeignKey
from levelup.db.base import Base


class SharedChapter(Base):
    __tablename__ = "shared_chapters"

    id = Column(Integer, primary_key=True, autoincrement=True)
    share_id = Column(String, unique=True, nullable=False)
    chapter_id = Column(Integer, ForeignKey("chapters.id", ondelete="CASCADE"), nullable=False, index=True)
    shared_by = Column(String, ForeignKey("users.id", ondelete="SET NULL"), index=True)
    expires_at = Column(DateTime, nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)
