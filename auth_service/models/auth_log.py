"""
SQLModel-based AuthLog model for the security audit trail.

Append-only: the auth core inserts rows and never updates or deletes them.
Retention is handled outside the service.
"""

from datetime import datetime

from sqlalchemy import ForeignKeyConstraint, Index
from sqlmodel import Field, SQLModel

from auth_service.core.database import utc_now


class AuthLogs(SQLModel, table=True):
    """
    Database table for authentication events.

    ``user_id`` is nullable: failed attempts against unknown emails are still
    recorded. ``error_message`` never contains raw passwords or raw tokens.
    """

    __tablename__ = "auth_logs"

    __table_args__ = (
        ForeignKeyConstraint(
            ["user_id"],
            ["users.user_id"],
            ondelete="SET NULL",
            onupdate="CASCADE",
            name="fk_auth_logs_user_id",
        ),
        Index("idx_auth_logs_user_id", "user_id"),
        Index("idx_auth_logs_created_at", "created_at"),
        Index("idx_auth_logs_event_type", "event_type"),
    )

    # Primary key (autoincrement, so ordering by id is insertion order)
    log_id: int | None = Field(default=None, primary_key=True)

    user_id: str | None = Field(default=None, max_length=36)

    # AuthEventType value
    event_type: str = Field(max_length=50)
    success: bool

    # Request metadata
    ip_address: str | None = Field(default=None, max_length=45)
    user_agent: str | None = Field(default=None, max_length=255)

    error_message: str | None = Field(default=None, max_length=500)
    created_at: datetime = Field(default_factory=utc_now)
