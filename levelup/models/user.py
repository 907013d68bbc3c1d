"""User model."""
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Boolean
from levelup.db.base import Base


class User(Base):
    """Local mirror of an identity resolved by the auth provider."""

    __tablename__ = "users"

    id = Column(String, primary_key=True)
    email = Column(String(255), unique=True, index=True)
    first_name = Column(String(100))
    last_name = Column(String(100))
    profile_image_url = Column(String)
    is_admin = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
