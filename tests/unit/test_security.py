"""Tests for password hashing, password policy and token helpers."""

from datetime import UTC, datetime, timedelta

import jwt
import pytest
from argon2 import PasswordHasher

from auth_service.config import settings
from auth_service.core.errors import AuthErrorKind
from auth_service.core.result import Failure, Success
from auth_service.core.security import (
    create_access_token,
    create_refresh_token,
    get_password_hash,
    hash_refresh_token,
    password_needs_rehash,
    validate_password_strength,
    verify_access_token,
    verify_password,
)


@pytest.mark.unit
class TestPasswordPolicy:
    """Tests for validate_password_strength."""

    def test_compliant_password(self):
        assert validate_password_strength("TestPass123!") == (True, None)

    @pytest.mark.parametrize(
        "password, fragment",
        [
            ("Test12!", "at least 8"),
            ("testpass123!", "uppercase"),
            ("TestPass!!!", "digit"),
            ("TestPass1234", "special"),
        ],
    )
    def test_each_rule(self, password, fragment):
        is_valid, error = validate_password_strength(password)

        assert not is_valid
        assert fragment in error

    def test_too_long(self):
        is_valid, _ = validate_password_strength("A1!" + "a" * 300)

        assert not is_valid


@pytest.mark.unit
class TestPasswordHashing:
    """Tests for Argon2id hashing."""

    def test_hash_is_argon2id_and_salted(self):
        first = get_password_hash("TestPass123!")
        second = get_password_hash("TestPass123!")

        assert first.startswith("$argon2id$")
        assert first != second

    def test_verify(self):
        hashed = get_password_hash("TestPass123!")

        assert verify_password("TestPass123!", hashed)
        assert not verify_password("TestPass123?", hashed)

    def test_verify_malformed_hash(self):
        assert not verify_password("TestPass123!", "not-a-hash")

    def test_needs_rehash_for_other_parameters(self):
        stronger = PasswordHasher(
            time_cost=settings.ARGON2_TIME_COST + 1,
            memory_cost=settings.ARGON2_MEMORY_COST,
            parallelism=settings.ARGON2_PARALLELISM,
        ).hash("TestPass123!")

        assert password_needs_rehash(stronger)
        assert not password_needs_rehash(get_password_hash("TestPass123!"))


@pytest.mark.unit
class TestAccessTokens:
    """Tests for access token issuance and verification."""

    def test_round_trip(self):
        token, expires_at = create_access_token("user-1")

        assert verify_access_token(token) == Success("user-1")
        assert expires_at > datetime.now(UTC)

    def test_lifetime_is_configured_ttl(self):
        token, _ = create_access_token("user-1")
        claims = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])

        assert claims["exp"] - claims["iat"] == settings.ACCESS_TOKEN_EXPIRE_SECONDS
        assert claims["type"] == "access"

    def test_expired(self):
        token, _ = create_access_token("user-1", now=datetime.now(UTC) - timedelta(hours=1))

        assert verify_access_token(token) == Failure(AuthErrorKind.TOKEN_EXPIRED)

    def test_within_clock_skew_is_accepted(self):
        issued = datetime.now(UTC) - timedelta(seconds=settings.ACCESS_TOKEN_EXPIRE_SECONDS + 2)
        token, _ = create_access_token("user-1", now=issued)

        assert verify_access_token(token) == Success("user-1")

    def test_wrong_secret(self):
        token = jwt.encode(
            {"sub": "user-1", "iat": 0, "exp": 2**31, "type": "access"},
            "another-secret-another-secret-123",
            algorithm="HS256",
        )

        assert verify_access_token(token) == Failure(AuthErrorKind.TOKEN_INVALID)

    def test_wrong_token_type(self):
        now = int(datetime.now(UTC).timestamp())
        token = jwt.encode(
            {"sub": "user-1", "iat": now, "exp": now + 60, "type": "refresh"},
            settings.SECRET_KEY,
            algorithm=settings.ALGORITHM,
        )

        assert verify_access_token(token) == Failure(AuthErrorKind.TOKEN_INVALID)

    def test_garbage(self):
        assert verify_access_token("garbage") == Failure(AuthErrorKind.TOKEN_INVALID)


@pytest.mark.unit
class TestRefreshTokens:
    """Tests for opaque refresh tokens."""

    def test_tokens_are_random(self):
        assert create_refresh_token() != create_refresh_token()
        assert len(create_refresh_token()) == 43

    def test_hash_is_stable_sha256_hex(self):
        digest = hash_refresh_token("abc")

        assert digest == hash_refresh_token("abc")
        assert digest == "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"
