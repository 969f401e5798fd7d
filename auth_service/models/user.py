"""
SQLModel-based User models with inheritance for security

UserBase (shared public fields)
    ├─> Users (database table, adds the password hash and identifiers)
    └─> UserResponse (API schema, defined in auth_service/schemas)

Emails are stored normalized (trimmed, lower-cased), so the unique index on
``email`` enforces case-insensitive uniqueness on every backend.
"""

import uuid
from datetime import datetime

from sqlalchemy import Index
from sqlmodel import Field, SQLModel

from auth_service.core.database import utc_now


def new_id() -> str:
    """Random UUIDv4 primary key in canonical string form."""
    return str(uuid.uuid4())


class UserBase(SQLModel):
    """Fields safe to expose via the API."""

    email: str = Field(max_length=255)
    email_verified: bool = Field(default=False)


class Users(UserBase, table=True):
    """
    Database table for accounts.

    Internal/sensitive fields (should NOT be exposed via public API):
    - password_hash: Argon2id encoded hash (algorithm-tagged, salted)

    Rows are never deleted by the auth core; deletion is an external concern.
    """

    __tablename__ = "users"

    __table_args__ = (Index("idx_users_email", "email", unique=True),)

    # Primary key
    user_id: str = Field(default_factory=new_id, primary_key=True, max_length=36)

    # Authentication (highly sensitive - never expose)
    password_hash: str = Field(max_length=255)

    # Timestamps
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now, sa_column_kwargs={"onupdate": utc_now})
