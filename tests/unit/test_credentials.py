"""Tests for the Credential Verifier."""

import pytest
from argon2 import PasswordHasher
from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from auth_service.config import AuthEventType, settings
from auth_service.core.errors import AuthError, AuthErrorKind
from auth_service.models.auth_log import AuthLogs
from auth_service.models.user import Users
from auth_service.services.credentials import (
    normalize_email,
    register_user,
    verify_credentials,
)
from conftest import TEST_PASSWORD


@pytest.mark.unit
class TestNormalizeEmail:
    def test_trims_and_lowercases(self):
        assert normalize_email("  User@Example.COM\n") == "user@example.com"


@pytest.mark.unit
class TestRegisterUser:
    """Tests for register_user."""

    async def test_rule_order_reports_email_first(
        self, db_session: AsyncSession, security_logger, metadata
    ):
        with pytest.raises(AuthError) as exc_info:
            await register_user(
                db_session,
                security_logger,
                email="bad",
                password="weak",
                confirm_password="other",
                metadata=metadata,
            )

        assert exc_info.value.field == "email"

    async def test_duplicate_is_conflict(
        self, db_session: AsyncSession, security_logger, metadata, test_user: Users
    ):
        with pytest.raises(AuthError) as exc_info:
            await register_user(
                db_session,
                security_logger,
                email=test_user.email.upper(),
                password=TEST_PASSWORD,
                confirm_password=TEST_PASSWORD,
                metadata=metadata,
            )

        assert exc_info.value.kind == AuthErrorKind.CONFLICT
        entry = (await db_session.execute(select(AuthLogs))).scalar_one()
        assert entry.success is False


@pytest.mark.unit
class TestVerifyCredentials:
    """Tests for verify_credentials."""

    async def test_valid(self, db_session: AsyncSession, security_logger, metadata, test_user):
        user = await verify_credentials(
            db_session, security_logger, email=test_user.email, password=TEST_PASSWORD, metadata=metadata
        )

        assert user.user_id == test_user.user_id

    async def test_unknown_email(self, db_session: AsyncSession, security_logger, metadata):
        with pytest.raises(AuthError) as exc_info:
            await verify_credentials(
                db_session,
                security_logger,
                email="ghost@example.com",
                password=TEST_PASSWORD,
                metadata=metadata,
            )

        assert exc_info.value.kind == AuthErrorKind.INVALID_CREDENTIALS

    async def test_weaker_hash_is_upgraded(
        self, db_session: AsyncSession, security_logger, metadata
    ):
        """A hash made with other parameters is replaced after a successful login."""
        old_hash = PasswordHasher(
            time_cost=settings.ARGON2_TIME_COST + 1,
            memory_cost=settings.ARGON2_MEMORY_COST,
            parallelism=settings.ARGON2_PARALLELISM,
        ).hash(TEST_PASSWORD)
        user = Users(email="legacy@example.com", password_hash=old_hash)
        db_session.add(user)
        await db_session.commit()

        await verify_credentials(
            db_session,
            security_logger,
            email="legacy@example.com",
            password=TEST_PASSWORD,
            metadata=metadata,
        )

        stored = await db_session.scalar(
            select(Users.password_hash).where(Users.email == "legacy@example.com")  # type: ignore[arg-type]
        )
        assert stored != old_hash
        assert f"t={settings.ARGON2_TIME_COST}" in stored

    async def test_failed_upgrade_does_not_fail_login(
        self, db_session: AsyncSession, security_logger, metadata, monkeypatch
    ):
        old_hash = PasswordHasher(
            time_cost=settings.ARGON2_TIME_COST + 1,
            memory_cost=settings.ARGON2_MEMORY_COST,
            parallelism=settings.ARGON2_PARALLELISM,
        ).hash(TEST_PASSWORD)
        db_session.add(Users(email="legacy@example.com", password_hash=old_hash))
        await db_session.commit()

        real_commit = db_session.commit
        calls = 0

        async def commit_failing_once():
            nonlocal calls
            calls += 1
            if calls == 1:
                raise OperationalError("COMMIT", {}, Exception("connection lost"))
            await real_commit()

        monkeypatch.setattr(db_session, "commit", commit_failing_once)

        user = await verify_credentials(
            db_session,
            security_logger,
            email="legacy@example.com",
            password=TEST_PASSWORD,
            metadata=metadata,
        )

        assert user.email == "legacy@example.com"
        assert user.password_hash == old_hash
        entry = (await db_session.execute(select(AuthLogs))).scalar_one()
        assert entry.event_type == AuthEventType.LOGIN
        assert entry.success is True
        assert security_logger.write_failures == 0
