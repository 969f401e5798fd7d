"""
Credential Verifier: registration, login verification and password change.

Every attempt writes one audit entry before its outcome is returned.
Argon2 hashing is CPU and memory heavy, so it runs in a worker thread to
keep the event loop responsive.
"""

import asyncio

from email_validator import EmailNotValidError, validate_email
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from auth_service.config import AuthEventType
from auth_service.core.database import rollback_quietly, store_call
from auth_service.core.errors import AuthError, AuthErrorKind, StoreUnavailableError
from auth_service.core.logging import get_logger
from auth_service.core.result import Failure
from auth_service.core.security import (
    dummy_password_hash,
    get_password_hash,
    password_needs_rehash,
    validate_password_strength,
    verify_password,
)
from auth_service.models.user import Users
from auth_service.services.security_log import RequestMetadata, SecurityLogger
from auth_service.services.session_store import SessionStore

logger = get_logger(__name__)


def normalize_email(email: str) -> str:
    """Canonical form used for storage, lookup and rate-limit keys."""
    return email.strip().lower()


async def get_user_by_email(db: AsyncSession, email: str) -> Users | None:
    async with store_call():
        result = await db.execute(
            select(Users).where(Users.email == normalize_email(email))  # type: ignore[arg-type]
        )
        return result.scalar_one_or_none()


async def _reject_registration(
    db: AsyncSession,
    audit: SecurityLogger,
    metadata: RequestMetadata,
    error: AuthError,
) -> AuthError:
    await audit.record(
        db,
        AuthEventType.REGISTER,
        success=False,
        metadata=metadata,
        error_message=error.message,
    )
    return error


async def register_user(
    db: AsyncSession,
    audit: SecurityLogger,
    *,
    email: str,
    password: str,
    confirm_password: str,
    metadata: RequestMetadata,
) -> Users:
    """
    Create an account.

    Rules are checked in order (email syntax, password policy, confirmation,
    uniqueness); the first violation is reported with its field tag.

    Raises:
        AuthError: VALIDATION (field email/password/confirmPassword),
            CONFLICT (email already registered), SERVICE_UNAVAILABLE
    """
    normalized = normalize_email(email)

    try:
        validate_email(normalized, check_deliverability=False)
    except EmailNotValidError:
        raise await _reject_registration(
            db,
            audit,
            metadata,
            AuthError(AuthErrorKind.VALIDATION, "Invalid email address", field="email"),
        ) from None

    is_valid, policy_error = validate_password_strength(password)
    if not is_valid:
        raise await _reject_registration(
            db,
            audit,
            metadata,
            AuthError(AuthErrorKind.VALIDATION, policy_error, field="password"),
        )

    if password != confirm_password:
        raise await _reject_registration(
            db,
            audit,
            metadata,
            AuthError(AuthErrorKind.VALIDATION, "Passwords do not match", field="confirmPassword"),
        )

    conflict = AuthError(
        AuthErrorKind.CONFLICT, "Email is already registered", field="email"
    )
    if await get_user_by_email(db, normalized) is not None:
        raise await _reject_registration(db, audit, metadata, conflict)

    password_hash = await asyncio.to_thread(get_password_hash, password)
    user = Users(email=normalized, password_hash=password_hash)

    try:
        async with store_call():
            db.add(user)
            await db.commit()
    except IntegrityError:
        # Lost a race with a concurrent registration of the same email
        await rollback_quietly(db)
        raise await _reject_registration(db, audit, metadata, conflict) from None

    logger.info("user_registered", user_id=user.user_id)
    await audit.record(
        db, AuthEventType.REGISTER, success=True, user_id=user.user_id, metadata=metadata
    )
    return user


async def verify_credentials(
    db: AsyncSession,
    audit: SecurityLogger,
    *,
    email: str,
    password: str,
    metadata: RequestMetadata,
) -> Users:
    """
    Check an email/password pair.

    Unknown email and wrong password are indistinguishable to the caller,
    including in timing: an unknown email is verified against a dummy hash.

    Raises:
        AuthError: INVALID_CREDENTIALS, SERVICE_UNAVAILABLE
    """
    user = await get_user_by_email(db, email)
    stored_hash = user.password_hash if user else dummy_password_hash()
    password_valid = await asyncio.to_thread(verify_password, password, stored_hash)

    if user is None or not password_valid:
        await audit.record(
            db,
            AuthEventType.FAILED_LOGIN,
            success=False,
            user_id=user.user_id if user else None,
            metadata=metadata,
            error_message="unknown email" if user is None else "wrong password",
        )
        raise AuthError(AuthErrorKind.INVALID_CREDENTIALS)

    if password_needs_rehash(user.password_hash):
        # Best effort: the stored hash still verifies if the upgrade is lost
        user_id = user.user_id
        user.password_hash = await asyncio.to_thread(get_password_hash, password)
        try:
            async with store_call():
                await db.commit()
        except StoreUnavailableError as exc:
            await rollback_quietly(db)
            logger.warning("password_rehash_failed", user_id=user_id, detail=exc.detail)
            # Rollback expired the instance; reload the stored row
            async with store_call():
                await db.refresh(user)
        else:
            logger.info("password_rehashed", user_id=user_id)

    await audit.record(
        db, AuthEventType.LOGIN, success=True, user_id=user.user_id, metadata=metadata
    )
    return user


async def change_password(
    db: AsyncSession,
    audit: SecurityLogger,
    store: SessionStore,
    *,
    user: Users,
    current_password: str,
    new_password: str,
    confirm_password: str,
    metadata: RequestMetadata,
) -> int:
    """
    Replace the user's password and revoke every session.

    Returns:
        Number of sessions revoked

    Raises:
        AuthError: INVALID_CREDENTIALS (wrong current password),
            VALIDATION (policy or confirmation), SERVICE_UNAVAILABLE
    """

    async def reject(error: AuthError) -> AuthError:
        await audit.record(
            db,
            AuthEventType.PASSWORD_CHANGE,
            success=False,
            user_id=user.user_id,
            metadata=metadata,
            error_message=error.message,
        )
        return error

    if not await asyncio.to_thread(verify_password, current_password, user.password_hash):
        raise await reject(
            AuthError(AuthErrorKind.INVALID_CREDENTIALS, "Current password is incorrect")
        )

    is_valid, policy_error = validate_password_strength(new_password)
    if not is_valid:
        raise await reject(AuthError(AuthErrorKind.VALIDATION, policy_error, field="newPassword"))

    if new_password != confirm_password:
        raise await reject(
            AuthError(AuthErrorKind.VALIDATION, "Passwords do not match", field="confirmPassword")
        )

    user.password_hash = await asyncio.to_thread(get_password_hash, new_password)
    async with store_call():
        await db.commit()

    revoked = await store.invalidate_all_for_user(user.user_id)
    if isinstance(revoked, Failure):
        raise AuthError(revoked.error)

    await audit.record(
        db, AuthEventType.PASSWORD_CHANGE, success=True, user_id=user.user_id, metadata=metadata
    )
    return revoked.value
