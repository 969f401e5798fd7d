"""
Error taxonomy and global exception handlers.

Every error leaving the service has the same JSON shape:

    {"error": "<code>", "message": "<human text>", "field": "<name>"}

where ``field`` is only present for validation errors. Handlers:
- AuthError (and StoreUnavailableError) -> mapped status and code
- HTTPException -> code derived from status
- RequestValidationError -> 400 validation_error with the offending field
- anything else -> 500 internal_error, logged with traceback
"""

from enum import Enum

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from auth_service.core.logging import get_logger

logger = get_logger(__name__)


class AuthErrorKind(str, Enum):
    """Every failure the auth core can report."""

    VALIDATION = "validation"
    CONFLICT = "conflict"
    UNAUTHORIZED = "unauthorized"
    INVALID_CREDENTIALS = "invalid_credentials"
    INVALID_REFRESH_TOKEN = "invalid_refresh_token"
    TOKEN_EXPIRED = "token_expired"
    TOKEN_INVALID = "token_invalid"
    TOKEN_REUSE_DETECTED = "token_reuse_detected"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"
    SERVICE_UNAVAILABLE = "service_unavailable"


# kind -> (HTTP status, wire code, default message)
_ERROR_INFO: dict[AuthErrorKind, tuple[int, str, str]] = {
    AuthErrorKind.VALIDATION: (400, "validation_error", "Invalid request"),
    AuthErrorKind.CONFLICT: (409, "conflict", "Resource already exists"),
    AuthErrorKind.UNAUTHORIZED: (401, "unauthorized", "Not authenticated"),
    AuthErrorKind.INVALID_CREDENTIALS: (401, "unauthorized", "Invalid email or password"),
    AuthErrorKind.INVALID_REFRESH_TOKEN: (401, "unauthorized", "Invalid refresh token"),
    AuthErrorKind.TOKEN_EXPIRED: (401, "token_expired", "Access token has expired"),
    AuthErrorKind.TOKEN_INVALID: (401, "unauthorized", "Invalid access token"),
    # Reuse is reported to clients exactly like an invalid refresh token
    AuthErrorKind.TOKEN_REUSE_DETECTED: (401, "unauthorized", "Invalid refresh token"),
    AuthErrorKind.FORBIDDEN: (403, "forbidden", "Access denied"),
    AuthErrorKind.NOT_FOUND: (404, "not_found", "Resource not found"),
    AuthErrorKind.RATE_LIMIT_EXCEEDED: (
        429,
        "rate_limit_exceeded",
        "Too many attempts. Please try again later.",
    ),
    AuthErrorKind.SERVICE_UNAVAILABLE: (
        503,
        "service_unavailable",
        "Service temporarily unavailable. Please retry shortly.",
    ),
}

# HTTP status -> wire code, for HTTPException raised by FastAPI/Starlette itself
_STATUS_CODES: dict[int, str] = {
    400: "validation_error",
    401: "unauthorized",
    403: "forbidden",
    404: "not_found",
    405: "method_not_allowed",
    409: "conflict",
    429: "rate_limit_exceeded",
    503: "service_unavailable",
}


class AuthError(Exception):
    """
    Error raised at the HTTP boundary.

    Args:
        kind: Taxonomy entry, determines status and wire code
        message: Client-safe message (defaults per kind)
        field: Offending request field, for validation errors
        headers: Extra response headers (e.g. Retry-After)
        code: Wire code override (e.g. profile_not_found)
    """

    def __init__(
        self,
        kind: AuthErrorKind,
        message: str | None = None,
        *,
        field: str | None = None,
        headers: dict[str, str] | None = None,
        code: str | None = None,
    ) -> None:
        status_code, default_code, default_message = _ERROR_INFO[kind]
        self.kind = kind
        self.status_code = status_code
        self.code = code or default_code
        self.message = message or default_message
        self.field = field
        self.headers = headers
        super().__init__(self.message)


class StoreUnavailableError(AuthError):
    """A database call failed or exceeded its time limit."""

    def __init__(self, detail: str = "") -> None:
        super().__init__(AuthErrorKind.SERVICE_UNAVAILABLE, headers={"Retry-After": "5"})
        # Internal only, never rendered to clients
        self.detail = detail


def error_body(code: str, message: str, field: str | None = None) -> dict[str, str]:
    """Build the uniform error body."""
    body = {"error": code, "message": message}
    if field:
        body["field"] = field
    return body


async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Render AuthError as the uniform error body."""
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.code, exc.message, exc.field),
        headers=exc.headers,
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Render HTTPException (routing 404/405, etc.) as the uniform error body."""
    code = _STATUS_CODES.get(exc.status_code, "internal_error")
    message = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(code, message),
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """
    Render request-shape errors as 400 validation_error.

    Only the first error is reported; its location (minus the "body" prefix)
    becomes the ``field`` tag.
    """
    errors = exc.errors()
    field = None
    message = "Invalid request body"
    if errors:
        first = errors[0]
        parts = [str(p) for p in first.get("loc", ()) if p != "body"]
        field = ".".join(parts) or None
        if first.get("type") == "missing" and field:
            message = f"{field} is required"
        else:
            message = first.get("msg", message)
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_body("validation_error", message, field),
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all: log the traceback, return an opaque 500."""
    logger.error(
        "unhandled_exception",
        path=request.url.path,
        method=request.method,
        exc_info=exc,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body("internal_error", "An unexpected error occurred"),
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Attach all handlers to the application."""
    # Starlette types handlers as taking Exception; each is only called with its own class
    app.add_exception_handler(AuthError, auth_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(HTTPException, http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, validation_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, generic_exception_handler)
