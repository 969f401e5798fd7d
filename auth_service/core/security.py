"""
Security utilities for authentication.

This module provides:
- Password policy validation
- Password hashing and verification using Argon2id
- Access token (JWT) issuance and verification
- Opaque refresh token generation and hashing
"""

import hashlib
import re
import secrets
from datetime import UTC, datetime, timedelta
from functools import lru_cache

import jwt
from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError

from auth_service.config import settings
from auth_service.core.errors import AuthErrorKind
from auth_service.core.result import Failure, Result, Success

PASSWORD_MIN_LENGTH = 8
PASSWORD_MAX_LENGTH = 255

_SPECIAL_CHARACTER = re.compile(r'[!@#$%^&*(),.?":{}|<>_\-+=\[\]\\\/~`\';]')

password_hasher = PasswordHasher(
    time_cost=settings.ARGON2_TIME_COST,
    memory_cost=settings.ARGON2_MEMORY_COST,
    parallelism=settings.ARGON2_PARALLELISM,
)


def validate_password_strength(password: str) -> tuple[bool, str | None]:
    """
    Validate password meets security requirements.

    Requirements:
    - At least 8 characters
    - Contains at least one uppercase letter
    - Contains at least one digit
    - Contains at least one special character

    Args:
        password: The password to validate

    Returns:
        Tuple of (is_valid, error_message)
    """
    if len(password) < PASSWORD_MIN_LENGTH:
        return False, f"Password must be at least {PASSWORD_MIN_LENGTH} characters long"

    if len(password) > PASSWORD_MAX_LENGTH:
        return False, f"Password must be at most {PASSWORD_MAX_LENGTH} characters long"

    if not re.search(r"[A-Z]", password):
        return False, "Password must contain at least one uppercase letter"

    if not re.search(r"\d", password):
        return False, "Password must contain at least one digit"

    if not _SPECIAL_CHARACTER.search(password):
        return False, "Password must contain at least one special character"

    return True, None


def get_password_hash(password: str) -> str:
    """
    Hash a password using Argon2id.

    The salt is generated per call and embedded in the encoded hash together
    with the algorithm tag and cost parameters.
    """
    return password_hasher.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Verify a plain password against an Argon2 hash.

    Args:
        plain_password: The plain text password to verify
        hashed_password: The encoded Argon2 hash

    Returns:
        True if password matches, False otherwise (including malformed hashes)
    """
    try:
        return password_hasher.verify(hashed_password, plain_password)
    except (VerificationError, InvalidHashError):
        return False


def password_needs_rehash(hashed_password: str) -> bool:
    """True when the stored hash uses weaker parameters than the configured ones."""
    try:
        return password_hasher.check_needs_rehash(hashed_password)
    except InvalidHashError:
        return True


@lru_cache(maxsize=1)
def dummy_password_hash() -> str:
    """
    Hash compared against when the email is unknown.

    Verifying against it costs the same as a real verification, so response
    time does not reveal whether an account exists.
    """
    return password_hasher.hash(secrets.token_urlsafe(16))


def create_access_token(user_id: str, now: datetime | None = None) -> tuple[str, datetime]:
    """
    Create a signed JWT access token.

    Args:
        user_id: The user ID to encode as the subject
        now: Issue time (defaults to the current time)

    Returns:
        Tuple of (encoded token, expiration datetime in UTC)
    """
    issued_at = now or datetime.now(UTC)
    expires_at = issued_at + timedelta(seconds=settings.ACCESS_TOKEN_EXPIRE_SECONDS)

    payload = {
        "sub": user_id,
        "iat": int(issued_at.timestamp()),
        "exp": int(expires_at.timestamp()),
        "type": "access",  # Custom claim to distinguish token types
    }

    encoded_jwt = jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)
    return encoded_jwt, expires_at


def verify_access_token(token: str) -> Result[str, AuthErrorKind]:
    """
    Verify and decode a JWT access token.

    Pure function of the token, the signing secret and the current time:
    no I/O is performed.

    Args:
        token: The JWT token to verify

    Returns:
        Success(user_id) or Failure(TOKEN_EXPIRED | TOKEN_INVALID)
    """
    try:
        payload = jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.ALGORITHM],
            leeway=settings.TOKEN_CLOCK_SKEW_SECONDS,
            options={"require": ["exp", "iat", "sub"], "verify_signature": True},
        )
    except jwt.ExpiredSignatureError:
        return Failure(AuthErrorKind.TOKEN_EXPIRED)
    except jwt.InvalidTokenError:
        return Failure(AuthErrorKind.TOKEN_INVALID)

    if payload.get("type") != "access":
        return Failure(AuthErrorKind.TOKEN_INVALID)

    user_id = payload.get("sub")
    if not isinstance(user_id, str) or not user_id:
        return Failure(AuthErrorKind.TOKEN_INVALID)

    return Success(user_id)


def create_refresh_token() -> str:
    """
    Create a cryptographically secure opaque refresh token.

    Returns:
        URL-safe random token string (256 bits, 43 characters)
    """
    return secrets.token_urlsafe(32)


def hash_refresh_token(raw_token: str) -> str:
    """SHA-256 hex digest of a raw refresh token; the only form ever stored."""
    return hashlib.sha256(raw_token.encode("utf-8")).hexdigest()


def token_fingerprint(token_hash: str) -> str:
    """Short prefix of a token hash, safe to put in logs."""
    return token_hash[:12]
