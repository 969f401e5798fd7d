"""
SQLModel-based Session model for refresh-token lineages.

One row per login. Every successful refresh rewrites the row in place
(token hash, expiry, last use) instead of adding a new one, so a lineage is
always exactly one row. Hashes rotated away are remembered in
``superseded_refresh_tokens`` for reuse detection.

Security features:
- Stores SHA-256 hashes of refresh tokens (never the raw token)
- Unique index on the hash: at most one live row per valid token
- User agent and IP tracking for audit (not a security boundary)
"""

from datetime import datetime

from sqlalchemy import ForeignKeyConstraint, Index
from sqlmodel import Field, SQLModel

from auth_service.core.database import utc_now
from auth_service.models.user import new_id


class Sessions(SQLModel, table=True):
    """
    Database table for live refresh-token lineages.

    Only the Session Store (auth_service.services.session_store) mutates
    these rows.
    """

    __tablename__ = "sessions"

    __table_args__ = (
        ForeignKeyConstraint(
            ["user_id"],
            ["users.user_id"],
            ondelete="CASCADE",
            onupdate="CASCADE",
            name="fk_sessions_user_id",
        ),
        Index("idx_sessions_refresh_token_hash", "refresh_token_hash", unique=True),
        Index("idx_sessions_user_id", "user_id"),
        Index("idx_sessions_expires_at", "expires_at"),
    )

    # Primary key
    session_id: str = Field(default_factory=new_id, primary_key=True, max_length=36)

    # Owner
    user_id: str = Field(max_length=36)

    # SHA-256 hex digest of the current refresh token (never plaintext!)
    refresh_token_hash: str = Field(max_length=64)

    # Expiration
    expires_at: datetime
    created_at: datetime = Field(default_factory=utc_now)
    last_used_at: datetime = Field(default_factory=utc_now)

    # Security tracking
    ip_address: str | None = Field(default=None, max_length=45)  # Supports IPv6
    user_agent: str | None = Field(default=None, max_length=255)


class SupersededRefreshTokens(SQLModel, table=True):
    """
    Hashes rotated away from a session, kept to attribute reuse to a user.

    A marker lives as long as the superseded token itself would have been
    valid (``expires_at`` copies the session expiry at rotation time).
    """

    __tablename__ = "superseded_refresh_tokens"

    __table_args__ = (
        ForeignKeyConstraint(
            ["user_id"],
            ["users.user_id"],
            ondelete="CASCADE",
            onupdate="CASCADE",
            name="fk_superseded_refresh_tokens_user_id",
        ),
        Index("idx_superseded_refresh_tokens_user_id", "user_id"),
        Index("idx_superseded_refresh_tokens_expires_at", "expires_at"),
    )

    token_hash: str = Field(primary_key=True, max_length=64)
    session_id: str = Field(max_length=36)
    user_id: str = Field(max_length=36)
    superseded_at: datetime = Field(default_factory=utc_now)
    expires_at: datetime
