"""Profile schemas for the protected /v1/users/{userID} resource."""

from datetime import date

from pydantic import Field, field_validator

from auth_service.schemas.base import CamelModel, UTCDatetime


class ProfileUpsertRequest(CamelModel):
    """Request schema for creating or replacing a profile."""

    screen_name: str = Field(..., alias="screenName", min_length=2, max_length=20)
    birthday: date
    avatar_url: str | None = Field(default=None, alias="avatarURL", max_length=2048)

    @field_validator("screen_name")
    @classmethod
    def strip_screen_name(cls, v: str) -> str:
        """Reject names that are only whitespace."""
        stripped = v.strip()
        if len(stripped) < 2:
            raise ValueError("screenName must contain at least 2 visible characters")
        return stripped


class ProfileResponse(CamelModel):
    """Response schema for a stored profile."""

    user_id: str = Field(..., alias="userID")
    screen_name: str = Field(..., alias="screenName")
    birthday: date
    avatar_url: str | None = Field(default=None, alias="avatarURL")
    created_at: UTCDatetime = Field(..., alias="createdAt")
    updated_at: UTCDatetime = Field(..., alias="updatedAt")


class IdentityStatusResponse(CamelModel):
    """Whether the user has finished identity setup (has a profile)."""

    has_completed_identity_setup: bool = Field(..., alias="hasCompletedIdentitySetup")
