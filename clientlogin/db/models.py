"""Database models for client login.

This module defines SQLAlchemy ORM models for provider-bound user profiles
and the login sessions issued to them.
"""

from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import JSON, Column, DateTime, ForeignKey, String, Text, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import declarative_base, relationship


Base = declarative_base()

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(astext_type=Text()), "postgresql")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UserProfile(Base):
    """
    One identity bound to one provider.

    The identifier is the provider-assigned user ID for OAuth providers and
    the username for the local password provider.
    """

    __tablename__ = "clientlogin_profiles"

    id = Column(String(), primary_key=True, default=lambda: str(uuid4()))
    provider = Column(String(64), nullable=False)
    identifier = Column(String(255), nullable=False)
    provider_data = Column(JSONType, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now(), onupdate=utcnow)

    # Unique constraint: one profile per provider account
    __table_args__ = (
        UniqueConstraint("provider", "identifier", name="uix_clientlogin_provider_identifier"),
    )

    # Relationships
    sessions = relationship("SessionRecord", back_populates="profile", cascade="all, delete-orphan")


class SessionRecord(Base):
    """Model for an active login session."""

    __tablename__ = "clientlogin_sessions"

    session_token = Column(String(128), primary_key=True)
    profile_id = Column(String(), ForeignKey("clientlogin_profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    provider_token = Column(JSONType, nullable=True)  # access token material from the provider
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now(), index=True)
    last_seen_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())

    # Relationships
    profile = relationship("UserProfile", back_populates="sessions")
