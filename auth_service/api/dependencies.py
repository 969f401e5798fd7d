"""
Shared route dependencies.

The rate limiter and security logger are process-wide objects created in
auth_service.main and kept on ``app.state``; tests override these
dependencies with fresh instances.
"""

from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from auth_service.core.auth import get_request_metadata
from auth_service.core.database import get_db
from auth_service.services.rate_limit import RateLimiter
from auth_service.services.security_log import RequestMetadata, SecurityLogger
from auth_service.services.session_store import SessionStore


def get_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.rate_limiter


def get_security_logger(request: Request) -> SecurityLogger:
    return request.app.state.security_logger


def get_session_store(
    db: Annotated[AsyncSession, Depends(get_db)],
    audit: Annotated[SecurityLogger, Depends(get_security_logger)],
) -> SessionStore:
    return SessionStore(db, audit)


# Type aliases for cleaner route signatures
DbSession = Annotated[AsyncSession, Depends(get_db)]
Limiter = Annotated[RateLimiter, Depends(get_rate_limiter)]
Audit = Annotated[SecurityLogger, Depends(get_security_logger)]
Store = Annotated[SessionStore, Depends(get_session_store)]
Metadata = Annotated[RequestMetadata, Depends(get_request_metadata)]
