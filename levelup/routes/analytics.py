"""Dashboard and CMS analytics routes."""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from levelup.core.security import get_current_user, require_admin
from levelup.db.sessions import get_db
from levelup.models.user import User
from levelup.services import analytics


router = APIRouter(prefix="/api/analytics", tags=["Analytics"])


@router.get("")
def get_analytics(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return analytics.user_overview(db, current_user.id)


@router.get("/content")
def get_content_analytics(admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    return analytics.content_analytics(db)
