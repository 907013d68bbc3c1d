import re

from levelup.core.errors import InvalidRequest

_NON_SLUG = re.compile(r"[^a-z0-9]+")


def slugify(title: str) -> str:
    """'Giving Feedback: The Basics' -> 'giving-feedback-the-basics'"""
    return _NON_SLUG.sub("-", (title or "").lower()).strip("-")


def title_slug(title) -> str:
    """Check that a submitted title is usable and return the slug derived from it."""
    if not isinstance(title, str) or not title.strip():
        raise InvalidRequest("title is required")
    slug = slugify(title)
    if not slug:
        raise InvalidRequest("title must contain letters or digits")
    return slug


def require_slug(values: dict) -> None:
    if "slug" in values and (not isinstance(values["slug"], str) or not values["slug"].strip()):
        raise InvalidRequest("slug must not be empty")
