"""
SQLModel-based UserProfile model.

Profiles are the protected per-user resource served under
/v1/users/{userID}/profile; only the owner may read or change one.
"""

from datetime import date, datetime

from sqlalchemy import ForeignKeyConstraint, Index
from sqlmodel import Field, SQLModel

from auth_service.core.database import utc_now


class UserProfileBase(SQLModel):
    """Fields shared with the profile request/response schemas."""

    screen_name: str = Field(max_length=20)
    birthday: date
    avatar_url: str | None = Field(default=None, max_length=2048)


class UserProfiles(UserProfileBase, table=True):
    """Database table for user profiles (one per user)."""

    __tablename__ = "user_profiles"

    __table_args__ = (
        ForeignKeyConstraint(
            ["user_id"],
            ["users.user_id"],
            ondelete="CASCADE",
            onupdate="CASCADE",
            name="fk_user_profiles_user_id",
        ),
        Index("idx_user_profiles_screen_name", "screen_name"),
    )

    user_id: str = Field(primary_key=True, max_length=36)

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now, sa_column_kwargs={"onupdate": utc_now})
