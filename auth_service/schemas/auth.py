"""
Authentication schemas for request/response validation.

Request bodies only check shape (presence, type, size). Content rules
(email syntax, password policy, confirmation match) are enforced by the
Credential Verifier so that every rejected attempt is audited.
"""

from pydantic import Field

from auth_service.schemas.base import CamelModel, UTCDatetime


class RegisterRequest(CamelModel):
    """Request schema for user registration."""

    email: str = Field(..., max_length=255)
    password: str = Field(..., max_length=1024)
    confirm_password: str = Field(..., alias="confirmPassword", max_length=1024)


class LoginRequest(CamelModel):
    """Request schema for user login."""

    email: str = Field(..., max_length=255)
    password: str = Field(..., max_length=1024)


class RefreshRequest(CamelModel):
    """Request schema carrying a refresh token (refresh and logout)."""

    refresh_token: str = Field(..., alias="refreshToken", min_length=1, max_length=512)


class PasswordChangeRequest(CamelModel):
    """Request schema for password change."""

    current_password: str = Field(..., alias="currentPassword", max_length=1024)
    new_password: str = Field(..., alias="newPassword", max_length=1024)
    confirm_password: str = Field(..., alias="confirmPassword", max_length=1024)


class RegisterResponse(CamelModel):
    """Response schema for successful registration."""

    user_id: str = Field(..., alias="userID")
    email: str
    message: str


class TokenResponse(CamelModel):
    """Response schema for a freshly issued token pair."""

    access_token: str = Field(..., alias="accessToken")
    refresh_token: str = Field(..., alias="refreshToken")
    expires_in: int = Field(
        ..., alias="expiresIn", description="Access token lifetime in seconds"
    )
    token_type: str = Field(default="Bearer", alias="tokenType")


class LoginResponse(TokenResponse):
    """Response schema for successful login."""

    user_id: str = Field(..., alias="userID")


class UserResponse(CamelModel):
    """The authenticated caller's account."""

    user_id: str = Field(..., alias="userID")
    email: str
    email_verified: bool = Field(..., alias="emailVerified")
    created_at: UTCDatetime = Field(..., alias="createdAt")


class MessageResponse(CamelModel):
    """Generic message response."""

    message: str
