"""Bearer-token authentication against the hosted auth provider."""
import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt
from sqlalchemy.orm import Session
from supabase import create_client

from levelup.core.config import Settings
from levelup.core.errors import Forbidden, Unauthenticated
from levelup.db.sessions import commit, get_db
from levelup.models.user import User

logger = logging.getLogger(__name__)

# auto_error=False so a missing header becomes our 401 instead of FastAPI's default
security = HTTPBearer(auto_error=False)


@dataclass
class Identity:
    """A user as reported by the auth provider."""

    id: str
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    profile_image_url: Optional[str] = None


def _identity_from_metadata(user_id: str, email: Optional[str], metadata: Optional[dict]) -> Identity:
    metadata = metadata or {}
    return Identity(
        id=user_id,
        email=email,
        first_name=metadata.get("first_name"),
        last_name=metadata.get("last_name"),
        profile_image_url=metadata.get("avatar_url"),
    )


class SupabaseIdentityProvider:
    """Resolve tokens by asking Supabase Auth who they belong to."""

    def __init__(self, url: str, key: str):
        self.client = create_client(url, key)

    def resolve(self, token: str) -> Identity:
        try:
            response = self.client.auth.get_user(token)
        except Exception as exc:
            logger.info("Supabase rejected bearer token: %s", exc)
            raise Unauthenticated() from exc

        user = getattr(response, "user", None)
        if user is None:
            raise Unauthenticated()
        return _identity_from_metadata(str(user.id), user.email, user.user_metadata)


class JWTIdentityProvider:
    """Verify provider-issued JWTs locally with the project's signing secret."""

    def __init__(self, secret: str, algorithm: str = "HS256", audience: Optional[str] = "authenticated"):
        self.secret = secret
        self.algorithm = algorithm
        self.audience = audience

    def resolve(self, token: str) -> Identity:
        try:
            payload = jwt.decode(token, self.secret, algorithms=[self.algorithm], audience=self.audience)
        except JWTError as exc:
            logger.info("Invalid bearer token: %s", exc)
            raise Unauthenticated() from exc

        user_id = payload.get("sub")
        if not user_id:
            raise Unauthenticated()
        return _identity_from_metadata(str(user_id), payload.get("email"), payload.get("user_metadata"))


def build_identity_provider(settings: Settings):
    if settings.AUTH_PROVIDER == "jwt":
        if not settings.SUPABASE_JWT_SECRET:
            raise RuntimeError("AUTH_PROVIDER=jwt requires SUPABASE_JWT_SECRET")
        return JWTIdentityProvider(settings.SUPABASE_JWT_SECRET, settings.JWT_ALGORITHM, settings.JWT_AUDIENCE)
    if settings.AUTH_PROVIDER == "supabase":
        if not settings.SUPABASE_URL or not settings.SUPABASE_ANON_KEY:
            raise RuntimeError("AUTH_PROVIDER=supabase requires SUPABASE_URL and SUPABASE_ANON_KEY")
        return SupabaseIdentityProvider(settings.SUPABASE_URL, settings.SUPABASE_ANON_KEY)
    raise RuntimeError(f"Unknown AUTH_PROVIDER: {settings.AUTH_PROVIDER}")


def get_identity_provider(request: Request):
    return request.app.state.identity_provider


def upsert_user(db: Session, identity: Identity) -> User:
    """Create or refresh the local user row for a resolved identity."""
    user = db.query(User).filter(User.id == identity.id).first()
    if user is None:
        user = User(id=identity.id)
        db.add(user)
    for column in ("email", "first_name", "last_name", "profile_image_url"):
        value = getattr(identity, column)
        if value is not None:
            setattr(user, column, value)
    commit(db)
    db.refresh(user)
    return user


def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    provider=Depends(get_identity_provider),
    db: Session = Depends(get_db),
) -> User:
    """
    Dependency to get the current authenticated user from the bearer token.

    Usage:
        @router.get("/protected")
        def protected_route(current_user: User = Depends(get_current_user)):
            return {"user_id": current_user.id}
    """
    if credentials is None or not credentials.credentials:
        raise Unauthenticated()

    identity = provider.resolve(credentials.credentials)
    user = upsert_user(db, identity)
    request.state.user = user
    return user


def require_admin(current_user: User = Depends(get_current_user)) -> User:
    if not current_user.is_admin:
        raise Forbidden("Admin access required")
    return current_user
