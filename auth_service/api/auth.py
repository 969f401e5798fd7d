"""
Authentication API endpoints.

This module provides endpoints for:
- Registration
- Login (JWT access token + opaque refresh token)
- Token refresh (single-use rotation with reuse detection)
- Logout (revoke one session)
- Current account and password change
"""

from fastapi import APIRouter, status

from auth_service.api.dependencies import Audit, DbSession, Limiter, Metadata, Store
from auth_service.config import AuthEventType
from auth_service.core.auth import CurrentUser, CurrentUserId
from auth_service.core.errors import AuthError, AuthErrorKind
from auth_service.core.logging import get_logger
from auth_service.core.result import Failure, Success
from auth_service.schemas.auth import (
    LoginRequest,
    LoginResponse,
    MessageResponse,
    PasswordChangeRequest,
    RefreshRequest,
    RegisterRequest,
    RegisterResponse,
    TokenResponse,
    UserResponse,
)
from auth_service.services.credentials import (
    change_password,
    normalize_email,
    register_user,
    verify_credentials,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/auth", tags=["Authentication"])


@router.post("/register", response_model=RegisterResponse, status_code=status.HTTP_201_CREATED)
async def register(
    body: RegisterRequest,
    db: DbSession,
    audit: Audit,
    metadata: Metadata,
) -> RegisterResponse:
    """
    Create an account.

    Password policy: at least 8 characters with an uppercase letter, a
    digit and a special character; ``confirmPassword`` must match.
    """
    user = await register_user(
        db,
        audit,
        email=body.email,
        password=body.password,
        confirm_password=body.confirm_password,
        metadata=metadata,
    )
    return RegisterResponse(
        user_id=user.user_id,
        email=user.email,
        message="User registered successfully",
    )


@router.post("/login", response_model=LoginResponse)
async def login(
    body: LoginRequest,
    db: DbSession,
    audit: Audit,
    limiter: Limiter,
    store: Store,
    metadata: Metadata,
) -> LoginResponse:
    """
    Authenticate and open a new session.

    Flow:
    1. Count the attempt against the per-email limit (429 once exceeded)
    2. Verify email/password (generic 401 on any mismatch)
    3. Clear the attempt counter
    4. Create a session and return the token pair
    """
    email = normalize_email(body.email)

    try:
        await limiter.check_login(email)
    except AuthError:
        await audit.record(
            db,
            AuthEventType.FAILED_LOGIN,
            success=False,
            metadata=metadata,
            error_message="rate limit exceeded",
        )
        raise

    user = await verify_credentials(
        db, audit, email=email, password=body.password, metadata=metadata
    )
    await limiter.reset_login(email)

    match await store.start(user.user_id, metadata):
        case Success(value=pair):
            logger.info("login_succeeded", user_id=user.user_id)
            return LoginResponse(
                access_token=pair.access_token,
                refresh_token=pair.refresh_token,
                expires_in=pair.expires_in,
                token_type=pair.token_type,
                user_id=pair.user_id,
            )
        case Failure(error=kind):
            raise AuthError(kind)


@router.post("/refresh", response_model=TokenResponse)
async def refresh(
    body: RefreshRequest,
    db: DbSession,
    audit: Audit,
    limiter: Limiter,
    store: Store,
    metadata: Metadata,
) -> TokenResponse:
    """
    Exchange a refresh token for a new token pair.

    The presented token is consumed: it can never be used again. Presenting
    an already-rotated token revokes every session of its owner. Any token
    failure is reported as the same generic 401.
    """
    try:
        await limiter.check_refresh(metadata.ip_address or "unknown")
    except AuthError:
        await audit.record(
            db,
            AuthEventType.REFRESH,
            success=False,
            metadata=metadata,
            error_message="rate limit exceeded",
        )
        raise

    match await store.rotate(body.refresh_token, metadata):
        case Success(value=pair):
            return TokenResponse(
                access_token=pair.access_token,
                refresh_token=pair.refresh_token,
                expires_in=pair.expires_in,
                token_type=pair.token_type,
            )
        case Failure(error=AuthErrorKind.SERVICE_UNAVAILABLE):
            raise AuthError(AuthErrorKind.SERVICE_UNAVAILABLE, headers={"Retry-After": "5"})
        case Failure():
            raise AuthError(AuthErrorKind.INVALID_REFRESH_TOKEN)


@router.post("/logout", response_model=MessageResponse)
async def logout(
    body: RefreshRequest,
    user_id: CurrentUserId,
    store: Store,
    metadata: Metadata,
) -> MessageResponse:
    """
    Revoke the session holding the given refresh token.

    Idempotent: an already revoked token gets the same response.
    """
    match await store.invalidate(body.refresh_token, metadata, user_id=user_id):
        case Success():
            return MessageResponse(message="Successfully logged out")
        case Failure(error=kind):
            raise AuthError(kind, headers={"Retry-After": "5"})


@router.get("/me", response_model=UserResponse)
async def me(current_user: CurrentUser) -> UserResponse:
    """Return the authenticated caller's account."""
    return UserResponse(
        user_id=current_user.user_id,
        email=current_user.email,
        email_verified=current_user.email_verified,
        created_at=current_user.created_at,
    )


@router.post("/change-password", response_model=MessageResponse)
async def change_password_route(
    body: PasswordChangeRequest,
    current_user: CurrentUser,
    db: DbSession,
    audit: Audit,
    store: Store,
    metadata: Metadata,
) -> MessageResponse:
    """
    Change the caller's password.

    Every session of the user is revoked, so all devices must log in again.
    """
    await change_password(
        db,
        audit,
        store,
        user=current_user,
        current_password=body.current_password,
        new_password=body.new_password,
        confirm_password=body.confirm_password,
        metadata=metadata,
    )
    return MessageResponse(message="Password changed successfully. Please log in again.")
