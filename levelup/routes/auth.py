"""Authentication routes."""
from fastapi import APIRouter, Depends

from levelup.core.security import get_current_user
from levelup.models.user import User
from levelup.utils.field_mapping import USER_FIELDS


router = APIRouter(prefix="/api/auth", tags=["Authentication"])


@router.get("/user")
def get_current_user_info(current_user: User = Depends(get_current_user)):
    """
    Get current authenticated user information.

    The user row is created on first sight of a valid token.
    """
    return USER_FIELDS.serialize(current_user)
