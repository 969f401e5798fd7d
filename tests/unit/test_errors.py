"""Tests for the error taxonomy and the uniform error body."""

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from pydantic import BaseModel

from auth_service.core.errors import (
    AuthError,
    AuthErrorKind,
    StoreUnavailableError,
    error_body,
    register_exception_handlers,
)


class Body(BaseModel):
    name: str


def _build_app() -> FastAPI:
    app = FastAPI()
    register_exception_handlers(app)

    @app.get("/auth-error")
    async def auth_error() -> None:
        raise AuthError(AuthErrorKind.VALIDATION, "Name is too short", field="name")

    @app.get("/store-down")
    async def store_down() -> None:
        raise StoreUnavailableError("connection reset by peer")

    @app.post("/body")
    async def body(payload: Body) -> dict[str, str]:
        return {"name": payload.name}

    @app.get("/boom")
    async def boom() -> None:
        raise RuntimeError("secret internals")

    return app


@pytest.fixture
async def error_client():
    async with AsyncClient(
        transport=ASGITransport(app=_build_app(), raise_app_exceptions=False),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest.mark.unit
class TestAuthErrorMapping:
    """Tests for kind -> status / code mapping."""

    @pytest.mark.parametrize(
        "kind, status_code, code",
        [
            (AuthErrorKind.VALIDATION, 400, "validation_error"),
            (AuthErrorKind.CONFLICT, 409, "conflict"),
            (AuthErrorKind.INVALID_CREDENTIALS, 401, "unauthorized"),
            (AuthErrorKind.INVALID_REFRESH_TOKEN, 401, "unauthorized"),
            (AuthErrorKind.TOKEN_REUSE_DETECTED, 401, "unauthorized"),
            (AuthErrorKind.TOKEN_INVALID, 401, "unauthorized"),
            (AuthErrorKind.TOKEN_EXPIRED, 401, "token_expired"),
            (AuthErrorKind.FORBIDDEN, 403, "forbidden"),
            (AuthErrorKind.RATE_LIMIT_EXCEEDED, 429, "rate_limit_exceeded"),
            (AuthErrorKind.SERVICE_UNAVAILABLE, 503, "service_unavailable"),
        ],
    )
    def test_mapping(self, kind, status_code, code):
        error = AuthError(kind)

        assert error.status_code == status_code
        assert error.code == code
        assert error.message

    def test_reuse_is_indistinguishable_from_invalid_token(self):
        reuse = AuthError(AuthErrorKind.TOKEN_REUSE_DETECTED)
        invalid = AuthError(AuthErrorKind.INVALID_REFRESH_TOKEN)

        assert (reuse.code, reuse.message) == (invalid.code, invalid.message)

    def test_error_body_omits_empty_field(self):
        assert error_body("unauthorized", "nope") == {"error": "unauthorized", "message": "nope"}


@pytest.mark.unit
class TestExceptionHandlers:
    """Tests for the registered exception handlers."""

    async def test_auth_error(self, error_client: AsyncClient):
        response = await error_client.get("/auth-error")

        assert response.status_code == 400
        assert response.json() == {
            "error": "validation_error",
            "message": "Name is too short",
            "field": "name",
        }

    async def test_store_unavailable_hides_detail(self, error_client: AsyncClient):
        response = await error_client.get("/store-down")

        assert response.status_code == 503
        assert response.headers["Retry-After"] == "5"
        assert "connection reset" not in response.text

    async def test_request_validation(self, error_client: AsyncClient):
        response = await error_client.post("/body", json={})

        assert response.status_code == 400
        assert response.json() == {
            "error": "validation_error",
            "message": "name is required",
            "field": "name",
        }

    async def test_method_not_allowed(self, error_client: AsyncClient):
        response = await error_client.delete("/auth-error")

        assert response.status_code == 405
        assert response.json()["error"] == "method_not_allowed"

    async def test_unhandled_exception(self, error_client: AsyncClient):
        response = await error_client.get("/boom")

        assert response.status_code == 500
        assert response.json() == {
            "error": "internal_error",
            "message": "An unexpected error occurred",
        }
