"""
Authentication dependencies for FastAPI route protection.

This module provides dependency functions for:
- Extracting and verifying Bearer access tokens
- Loading the current user from the database
- Collecting client metadata (IP, user agent) for the audit trail
"""

from typing import Annotated

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from auth_service.config import settings
from auth_service.core.database import get_db, store_call
from auth_service.core.errors import AuthError, AuthErrorKind
from auth_service.core.logging import set_user_context
from auth_service.core.result import Failure, Success
from auth_service.core.security import verify_access_token
from auth_service.models.user import Users
from auth_service.services.security_log import RequestMetadata

# Missing credentials are reported by get_current_user_id with our error body
bearer_scheme = HTTPBearer(auto_error=False)

_BEARER_CHALLENGE = {"WWW-Authenticate": "Bearer"}


async def get_current_user_id(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)] = None,
) -> str:
    """
    Extract and verify the Bearer access token.

    On success the user id is attached to ``request.state.user_id`` and to
    the log context; ownership checks are left to the route.

    Returns:
        User ID from a valid token

    Raises:
        AuthError: 401 unauthorized (missing/invalid) or token_expired
    """
    if credentials is None or not credentials.credentials:
        raise AuthError(AuthErrorKind.UNAUTHORIZED, headers=_BEARER_CHALLENGE)

    match verify_access_token(credentials.credentials):
        case Success(value=user_id):
            request.state.user_id = user_id
            set_user_context(user_id)
            return user_id
        case Failure(error=kind):
            raise AuthError(kind, headers=_BEARER_CHALLENGE)


async def get_current_user(
    user_id: Annotated[str, Depends(get_current_user_id)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> Users:
    """
    Load current user from database using verified token.

    Raises:
        AuthError: 401 if the account no longer exists
    """
    async with store_call():
        result = await db.execute(select(Users).where(Users.user_id == user_id))  # type: ignore[arg-type]
        user = result.scalar_one_or_none()

    if user is None:
        raise AuthError(AuthErrorKind.UNAUTHORIZED, "User not found", headers=_BEARER_CHALLENGE)
    return user


def get_client_ip(request: Request) -> str:
    """
    Extract client IP address from request.

    The socket peer is the client unless TRUSTED_PROXY_COUNT proxies sit in
    front of the service. Behind N proxies the client is the N-th hop from
    the right of ``X-Forwarded-For`` plus the peer; anything further left
    is client-supplied and ignored.
    """
    peer = request.client.host if request.client else "unknown"
    trusted = settings.TRUSTED_PROXY_COUNT
    forwarded = request.headers.get("X-Forwarded-For")
    if not trusted or not forwarded:
        return peer

    hops = [hop.strip() for hop in forwarded.split(",") if hop.strip()]
    hops.append(peer)
    # Fewer hops than proxies: take the left-most address a proxy recorded
    return hops[max(len(hops) - trusted - 1, 0)]


def get_user_agent(request: Request) -> str:
    """Extract User-Agent header from request ("unknown" if absent)."""
    return request.headers.get("User-Agent", "unknown")


def get_request_metadata(request: Request) -> RequestMetadata:
    """Client metadata recorded with audit entries."""
    return RequestMetadata(ip_address=get_client_ip(request), user_agent=get_user_agent(request))


# Type aliases for cleaner route signatures
CurrentUserId = Annotated[str, Depends(get_current_user_id)]
CurrentUser = Annotated[Users, Depends(get_current_user)]
