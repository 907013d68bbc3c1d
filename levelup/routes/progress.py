"""Reading progress routes."""
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from levelup.core.errors import NotFound
from levelup.core.security import get_current_user
from levelup.db.sessions import commit, get_db
from levelup.models.chapter import Chapter
from levelup.models.user import User
from levelup.models.user_progress import UserProgress
from levelup.utils.field_mapping import PROGRESS_FIELDS


router = APIRouter(prefix="/api/progress", tags=["Progress"])


class UpdateProgressRequest(BaseModel):
    completed: bool = True


def _user_progress(db: Session, user_id: str):
    rows = db.query(UserProgress).filter(UserProgress.user_id == user_id).order_by(UserProgress.id).all()
    return [PROGRESS_FIELDS.serialize(p) for p in rows]


@router.get("")
def get_progress(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return _user_progress(db, current_user.id)


@router.post("/{chapter_id}")
def update_progress(
    chapter_id: int,
    request: Optional[UpdateProgressRequest] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Mark a chapter complete (or not) for the caller and return all their progress."""
    request = request or UpdateProgressRequest()
    if not db.query(Chapter).filter(Chapter.id == chapter_id).first():
        raise NotFound("Chapter not found")

    progress = db.query(UserProgress).filter(
        UserProgress.user_id == current_user.id,
        UserProgress.chapter_id == chapter_id,
    ).first()
    if progress is None:
        progress = UserProgress(user_id=current_user.id, chapter_id=chapter_id)
        db.add(progress)

    progress.completed = request.completed
    progress.completed_at = datetime.utcnow() if request.completed else None
    commit(db)

    return _user_progress(db, current_user.id)
