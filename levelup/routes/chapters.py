"""Chapter routes: library CRUD, bulk admin operations, audio and sharing."""
import logging
import re
import secrets
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from levelup.core.config import settings
from levelup.core.errors import InvalidRequest, NotFound
from levelup.core.security import get_current_user, require_admin
from levelup.core.services import get_audio_generator
from levelup.db.sessions import commit, get_db
from levelup.models.category import Category
from levelup.models.chapter import Chapter
from levelup.models.shared_chapter import SharedChapter
from levelup.models.user import User
from levelup.models.user_progress import UserProgress
from levelup.services.audio_service import AudioGenerator
from levelup.utils.field_mapping import CHAPTER_FIELDS
from levelup.utils.slugs import require_slug, title_slug

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/chapters", tags=["Chapters"])
shared_router = APIRouter(prefix="/api/shared", tags=["Chapters"])

DUPLICATE_SLUG = "A chapter with this slug already exists"

_TAGS = re.compile(r"<[^>]+>")


# Request/Response schemas
class ChapterOrder(BaseModel):
    id: int
    chapterNumber: int


class ReorderChaptersRequest(BaseModel):
    chapters: List[ChapterOrder]


class BulkCategoryRequest(BaseModel):
    chapterIds: List[int]
    categoryId: Optional[int] = None


class BulkDeleteRequest(BaseModel):
    chapterIds: List[int]


class GenerateAudioRequest(BaseModel):
    voice: Optional[str] = None
    hd: bool = False


class AudioResponse(BaseModel):
    audioUrl: str


class ShareResponse(BaseModel):
    shareId: str
    expiresAt: str


def _get_chapter(db: Session, chapter_id: int) -> Chapter:
    chapter = db.query(Chapter).filter(Chapter.id == chapter_id).first()
    if not chapter:
        raise NotFound("Chapter not found")
    return chapter


def _get_chapters(db: Session, chapter_ids: List[int]) -> List[Chapter]:
    """Load every id or none: a single missing id fails the whole batch."""
    if not chapter_ids:
        raise InvalidRequest("chapterIds is required")
    found = {c.id: c for c in db.query(Chapter).filter(Chapter.id.in_(chapter_ids))}
    missing = [i for i in chapter_ids if i not in found]
    if missing:
        raise NotFound(f"Chapter not found: {missing[0]}")
    return [found[i] for i in chapter_ids]


def _check_category(db: Session, category_id: Optional[int]) -> None:
    if category_id is not None and not db.query(Category).filter(Category.id == category_id).first():
        raise NotFound("Category not found")


def _remove_dependents(db: Session, chapter_ids: List[int]) -> None:
    db.query(UserProgress).filter(UserProgress.chapter_id.in_(chapter_ids)).delete(synchronize_session=False)
    db.query(SharedChapter).filter(SharedChapter.chapter_id.in_(chapter_ids)).delete(synchronize_session=False)


def _speech_text(chapter: Chapter) -> str:
    body = _TAGS.sub(" ", chapter.content or "")
    return " ".join(f"{chapter.title}. {body}".split())


@router.get("")
def list_chapters(categoryId: Optional[int] = None, db: Session = Depends(get_db)):
    query = db.query(Chapter)
    if categoryId is not None:
        query = query.filter(Chapter.category_id == categoryId)
    chapters = query.order_by(Chapter.category_id, Chapter.chapter_number, Chapter.id).all()
    return [CHAPTER_FIELDS.serialize(c) for c in chapters]


@router.get("/{slug}")
def get_chapter(slug: str, db: Session = Depends(get_db)):
    chapter = db.query(Chapter).filter(Chapter.slug == slug).first()
    if not chapter:
        raise NotFound("Chapter not found")
    return CHAPTER_FIELDS.serialize(chapter)


@router.post("", status_code=status.HTTP_201_CREATED)
def create_chapter(
    payload: Dict[str, Any] = Body(...),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    values = CHAPTER_FIELDS.columns(payload)
    slug = title_slug(values.get("title"))
    if not values.get("slug"):
        values["slug"] = slug
    require_slug(values)
    _check_category(db, values.get("category_id"))

    chapter = Chapter(**values)
    db.add(chapter)
    commit(db, DUPLICATE_SLUG)
    db.refresh(chapter)
    logger.info("Chapter created: %s", chapter.slug)
    return CHAPTER_FIELDS.serialize(chapter)


@router.post("/reorder")
def reorder_chapters(
    request: ReorderChaptersRequest,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    chapters = _get_chapters(db, [item.id for item in request.chapters])
    for chapter, item in zip(chapters, request.chapters):
        chapter.chapter_number = item.chapterNumber
    commit(db)
    return {"success": True}


@router.post("/bulk-category")
def bulk_update_category(
    request: BulkCategoryRequest,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    _check_category(db, request.categoryId)
    chapters = _get_chapters(db, request.chapterIds)
    for chapter in chapters:
        chapter.category_id = request.categoryId
    commit(db)
    return {"success": True, "updated": len(chapters)}


@router.post("/bulk-delete")
def bulk_delete_chapters(
    request: BulkDeleteRequest,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    audio: AudioGenerator = Depends(get_audio_generator),
):
    chapters = _get_chapters(db, request.chapterIds)
    audio_urls = [c.audio_url for c in chapters if c.audio_url]

    _remove_dependents(db, request.chapterIds)
    for chapter in chapters:
        db.delete(chapter)
    commit(db)

    for url in audio_urls:
        audio.delete(url)
    return {"success": True, "deleted": len(chapters)}


@router.put("/{chapter_id}")
def update_chapter(
    chapter_id: int,
    payload: Dict[str, Any] = Body(...),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    chapter = _get_chapter(db, chapter_id)
    values = CHAPTER_FIELDS.columns(payload)
    if "title" in values:
        slug = title_slug(values["title"])
        if not values.get("slug") and values["title"] != chapter.title:
            values["slug"] = slug
    require_slug(values)
    if "category_id" in values:
        _check_category(db, values["category_id"])

    for column, value in values.items():
        setattr(chapter, column, value)
    commit(db, DUPLICATE_SLUG)
    db.refresh(chapter)
    return CHAPTER_FIELDS.serialize(chapter)


@router.delete("/{chapter_id}")
def delete_chapter(
    chapter_id: int,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    audio: AudioGenerator = Depends(get_audio_generator),
):
    chapter = _get_chapter(db, chapter_id)
    audio_url = chapter.audio_url

    _remove_dependents(db, [chapter_id])
    db.delete(chapter)
    commit(db)

    audio.delete(audio_url)
    return {"success": True}


@router.post("/{chapter_id}/generate-audio", response_model=AudioResponse)
async def generate_audio(
    chapter_id: int,
    request: Optional[GenerateAudioRequest] = None,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    audio: AudioGenerator = Depends(get_audio_generator),
):
    """
    Generate narration for a chapter with text-to-speech.

    Any previous audio file for the chapter is removed once the new one is saved.
    """
    request = request or GenerateAudioRequest()
    chapter = _get_chapter(db, chapter_id)
    text = _speech_text(chapter)
    if not text:
        raise InvalidRequest("Chapter has no content to narrate")

    audio_url = await audio.generate(chapter.id, text, voice=request.voice or settings.TTS_VOICE, hd=request.hd)
    previous = chapter.audio_url
    chapter.audio_url = audio_url
    commit(db)

    if previous and previous != audio_url:
        audio.delete(previous)
    return AudioResponse(audioUrl=audio_url)


@router.delete("/{chapter_id}/audio")
def delete_audio(
    chapter_id: int,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    audio: AudioGenerator = Depends(get_audio_generator),
):
    chapter = _get_chapter(db, chapter_id)
    if not chapter.audio_url:
        raise NotFound("Chapter has no audio")

    audio.delete(chapter.audio_url)
    chapter.audio_url = None
    commit(db)
    return {"success": True}


@router.post("/{chapter_id}/share", response_model=ShareResponse, status_code=status.HTTP_201_CREATED)
def share_chapter(
    chapter_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    chapter = _get_chapter(db, chapter_id)
    shared = SharedChapter(
        share_id=secrets.token_urlsafe(12),
        chapter_id=chapter.id,
        shared_by=current_user.id,
        expires_at=datetime.utcnow() + timedelta(days=settings.SHARE_LINK_TTL_DAYS),
    )
    db.add(shared)
    commit(db)
    db.refresh(shared)
    return ShareResponse(shareId=shared.share_id, expiresAt=shared.expires_at.isoformat())


@shared_router.get("/{share_id}")
def get_shared_chapter(share_id: str, db: Session = Depends(get_db)):
    shared = db.query(SharedChapter).filter(SharedChapter.share_id == share_id).first()
    if not shared or shared.expires_at <= datetime.utcnow():
        raise NotFound("Shared link not found or expired")

    chapter = _get_chapter(db, shared.chapter_id)
    return {
        "shareId": shared.share_id,
        "expiresAt": shared.expires_at.isoformat(),
        "chapter": CHAPTER_FIELDS.serialize(chapter),
    }
