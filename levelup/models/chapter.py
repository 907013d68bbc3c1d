"""Chapter model."""
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Text, Integer, ForeignKey, JSON, Index
from sqlalchemy.orm import relationship
from levelup.db.base import Base


class Chapter(Base):
    """A lesson or book summary in the content library."""

    __tablename__ = "chapters"
    __table_args__ = (
        Index("chapters_category_chapter_num_idx", "category_id", "chapter_number"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    slug = Column(String, unique=True, nullable=False)
    title = Column(String, nullable=False)
    preview = Column(Text)
    content = Column(Text)
    duration = Column(String)
    category_id = Column(Integer, ForeignKey("categories.id"), index=True)
    chapter_number = Column(Integer)
    youtube_url = Column(String)
    spotify_url = Column(String)
    try_this_week = Column(Text)
    content_type = Column(String, default="lesson")  # 'lesson' or 'book_summary'
    author = Column(String)
    reading_time = Column(Integer)
    key_takeaways = Column(JSON)
    audio_url = Column(String)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    category = relationship("Category", back_populates="chapters")
