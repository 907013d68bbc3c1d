"""camelCase API fields <-> snake_case storage columns.

Each table lists every column of its model exactly once. Unknown request
fields are rejected instead of being passed through to the ORM.
"""
from datetime import datetime
from typing import Any, Dict, Iterable, Mapping

from levelup.core.errors import InvalidRequest


class FieldMap:
    """Bidirectional, total mapping between API fields and model columns."""

    def __init__(self, fields: Mapping[str, str], read_only: Iterable[str] = ()):
        self.to_column: Dict[str, str] = dict(fields)
        self.to_field: Dict[str, str] = {column: field for field, column in self.to_column.items()}
        if len(self.to_field) != len(self.to_column):
            raise ValueError("Field map must be one-to-one")
        self.read_only = frozenset(read_only)

    def columns(self, payload: Mapping[str, Any]) -> Dict[str, Any]:
        """Translate a request payload into column assignments."""
        rejected = sorted(k for k in payload if k not in self.to_column or k in self.read_only)
        if rejected:
            raise InvalidRequest(f"Unknown or read-only fields: {', '.join(rejected)}")
        return {self.to_column[k]: v for k, v in payload.items()}

    def serialize(self, row: Any) -> Dict[str, Any]:
        """Render an ORM row as an API dict."""
        data = {}
        for column, field in self.to_field.items():
            value = getattr(row, column)
            if isinstance(value, datetime):
                value = value.isoformat()
            data[field] = value
        return data


CHAPTER_FIELDS = FieldMap(
    {
        "id": "id",
        "slug": "slug",
        "title": "title",
        "preview": "preview",
        "content": "content",
        "duration": "duration",
        "categoryId": "category_id",
        "chapterNumber": "chapter_number",
        "youtubeUrl": "youtube_url",
        "spotifyUrl": "spotify_url",
        "tryThisWeek": "try_this_week",
        "contentType": "content_type",
        "author": "author",
        "readingTime": "reading_time",
        "keyTakeaways": "key_takeaways",
        "audioUrl": "audio_url",
        "createdAt": "created_at",
        "updatedAt": "updated_at",
    },
    read_only=("id", "createdAt", "updatedAt"),
)

CATEGORY_FIELDS = FieldMap(
    {
        "id": "id",
        "slug": "slug",
        "title": "title",
        "description": "description",
        "iconType": "icon_type",
        "sortOrder": "sort_order",
        "createdAt": "created_at",
    },
    read_only=("id", "createdAt"),
)

PROGRESS_FIELDS = FieldMap(
    {
        "id": "id",
        "userId": "user_id",
        "chapterId": "chapter_id",
        "completed": "completed",
        "completedAt": "completed_at",
        "createdAt": "created_at",
        "updatedAt": "updated_at",
    },
    read_only=("id", "userId", "createdAt", "updatedAt"),
)

USER_FIELDS = FieldMap(
    {
        "id": "id",
        "email": "email",
        "firstName": "first_name",
        "lastName": "last_name",
        "profileImageUrl": "profile_image_url",
        "isAdmin": "is_admin",
        "createdAt": "created_at",
        "updatedAt": "updated_at",
    },
    read_only=("id", "email", "isAdmin", "createdAt", "updatedAt"),
)
