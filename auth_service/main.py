"""
FastAPI Application - Shell Auth Service
Registration, login and refresh-token rotation for the Shell clients
"""

import uuid
from collections.abc import AsyncGenerator, Awaitable, Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from auth_service.api.dependencies import Audit, DbSession
from auth_service.config import settings
from auth_service.core.database import store_call
from auth_service.core.errors import StoreUnavailableError, register_exception_handlers
from auth_service.core.logging import (
    clear_request_context,
    configure_logging,
    get_logger,
    set_request_context,
)
from auth_service.services.rate_limit import RateLimiter, build_rate_limit_store
from auth_service.services.security_log import SecurityLogger

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Lifespan context manager for startup and shutdown events"""
    configure_logging()
    logger.info(
        "startup",
        project=settings.PROJECT_NAME,
        environment=settings.ENVIRONMENT,
        rate_limit_backend=settings.RATE_LIMIT_BACKEND,
    )
    yield
    await app.state.rate_limiter.close()
    logger.info("shutdown")


# Create FastAPI application
app = FastAPI(
    title=settings.PROJECT_NAME,
    description="Authentication core: register, login, refresh-token rotation",
    version=settings.VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# Process-wide collaborators, shared by every request
app.state.rate_limiter = RateLimiter(build_rate_limit_store())
app.state.security_logger = SecurityLogger()

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)


@app.middleware("http")
async def request_context_middleware(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    """Bind a request id to every log line of the request and echo it back."""
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    set_request_context(request_id)
    try:
        response = await call_next(request)
    finally:
        clear_request_context()
    response.headers["X-Request-ID"] = request_id
    return response


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint - API information"""
    return {
        "name": settings.PROJECT_NAME,
        "version": settings.VERSION,
        "status": "running",
        "docs": "/docs",
    }


@app.get("/health")
async def health(db: DbSession, audit: Audit) -> JSONResponse:
    """Health check endpoint: database reachability and audit write failures"""
    audit_failures = audit.write_failures
    try:
        async with store_call():
            await db.execute(text("SELECT 1"))
    except StoreUnavailableError as exc:
        logger.error("health_check_failed", detail=exc.detail)
        return JSONResponse(
            status_code=503,
            content={
                "status": "unhealthy",
                "database": "disconnected",
                "auditWriteFailures": audit_failures,
            },
        )
    return JSONResponse(
        content={
            "status": "healthy",
            "database": "connected",
            "auditWriteFailures": audit_failures,
        }
    )


# Import and include routers
from auth_service.api import auth  # noqa: E402
from auth_service.api.v1 import router as api_v1_router  # noqa: E402

app.include_router(auth.router)
app.include_router(api_v1_router, prefix="/v1")
