"""Team overview routes (admin only)."""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from levelup.core.security import require_admin
from levelup.db.sessions import get_db
from levelup.models.user import User
from levelup.services import analytics


router = APIRouter(prefix="/api/team", tags=["Team"])


@router.get("/members")
def get_team_members(admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    return analytics.team_members(db)


@router.get("/stats")
def get_team_stats(admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    return analytics.team_stats(db)
