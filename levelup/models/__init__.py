"""Database models."""
from levelup.models.user import User
from levelup.models.category import Category
from levelup.models.chapter import Chapter
from levelup.models.user_progress import UserProgress
from levelup.models.shared_chapter import SharedChapter
from levelup.models.chat_session import ChatSession

__all__ = [
    "User",
    "Category",
    "Chapter",
    "UserProgress",
    "SharedChapter",
    "ChatSession",
]
