"""
Session Store: refresh-token lineages and rotation with reuse detection.

A lineage is one ``sessions`` row created at login. Its states:

    Active(hash, expires_at) --refresh--> Active(new_hash, new_expires_at)
    Active --logout | reuse detected--> Revoked (row deleted)

Rotation is a compare-and-swap on the token hash column:

    UPDATE sessions SET refresh_token_hash = :new ...
    WHERE session_id = :id AND refresh_token_hash = :old

Exactly one of two concurrent rotations of the same token sees one affected
row; the other sees zero and takes the reuse path. Hashes rotated away are
kept in ``superseded_refresh_tokens`` until they would have expired, so a
later presentation of one is attributed to its owner and revokes every
session of that user.

All operations return Success/Failure; store failures become
Failure(SERVICE_UNAVAILABLE) and are never retried here (retrying a
rotation could itself look like reuse).
"""

from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from auth_service.config import AuthEventType, settings
from auth_service.core.database import rollback_quietly, store_call, utc_now
from auth_service.core.errors import AuthErrorKind, StoreUnavailableError
from auth_service.core.logging import get_logger
from auth_service.core.result import Failure, Result, Success
from auth_service.core.security import (
    create_access_token,
    create_refresh_token,
    hash_refresh_token,
    token_fingerprint,
)
from auth_service.models.session import Sessions, SupersededRefreshTokens
from auth_service.services.security_log import RequestMetadata, SecurityLogger

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class TokenPair:
    """A freshly minted access token and raw refresh token."""

    user_id: str
    access_token: str
    refresh_token: str
    expires_in: int
    token_type: str = "Bearer"


# Audit messages per rotation failure (log-safe, never shown to clients)
_ROTATION_FAILURES: dict[AuthErrorKind, str] = {
    AuthErrorKind.INVALID_REFRESH_TOKEN: "unknown refresh token",
    AuthErrorKind.TOKEN_EXPIRED: "refresh token expired",
    AuthErrorKind.TOKEN_REUSE_DETECTED: "refresh token reuse detected; all sessions revoked",
    AuthErrorKind.SERVICE_UNAVAILABLE: "session store unavailable",
}


def refresh_token_ttl() -> timedelta:
    return timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)


class SessionStore:
    """
    The only writer of ``sessions`` and ``superseded_refresh_tokens`` rows.

    Each public operation owns its transaction: it commits on success and
    rolls back on failure before returning.
    """

    def __init__(self, db: AsyncSession, audit: SecurityLogger) -> None:
        self.db = db
        self.audit = audit

    async def create_session(
        self,
        user_id: str,
        raw_refresh_token: str,
        ttl: timedelta,
        metadata: RequestMetadata,
    ) -> Result[Sessions, AuthErrorKind]:
        """
        Persist a new lineage holding the hash of ``raw_refresh_token``.

        Args:
            user_id: Owner of the session
            raw_refresh_token: Token handed to the client (only its hash is stored)
            ttl: Lifetime of the refresh token
            metadata: Client IP / user agent for audit
        """
        now = utc_now()
        session = Sessions(
            user_id=user_id,
            refresh_token_hash=hash_refresh_token(raw_refresh_token),
            expires_at=now + ttl,
            created_at=now,
            last_used_at=now,
            ip_address=metadata.ip_address,
            user_agent=metadata.user_agent[:255] if metadata.user_agent else None,
        )
        try:
            async with store_call():
                self.db.add(session)
                await self.db.commit()
        except StoreUnavailableError as exc:
            await rollback_quietly(self.db)
            logger.error("session_create_failed", user_id=user_id, detail=exc.detail)
            return Failure(AuthErrorKind.SERVICE_UNAVAILABLE)

        logger.info("session_created", user_id=user_id, session_id=session.session_id)
        return Success(session)

    async def start(self, user_id: str, metadata: RequestMetadata) -> Result[TokenPair, AuthErrorKind]:
        """Open a lineage for a fresh login and mint its first token pair."""
        raw_refresh_token = create_refresh_token()
        created = await self.create_session(
            user_id, raw_refresh_token, refresh_token_ttl(), metadata
        )
        if isinstance(created, Failure):
            return created
        return Success(_token_pair(user_id, raw_refresh_token))

    async def rotate(
        self, raw_refresh_token: str, metadata: RequestMetadata
    ) -> Result[TokenPair, AuthErrorKind]:
        """
        Exchange a refresh token for a new token pair.

        Outcomes:
            Success(pair): the session now holds the new token's hash
            Failure(INVALID_REFRESH_TOKEN): token unknown and unattributable
            Failure(TOKEN_EXPIRED): session expired (and removed)
            Failure(TOKEN_REUSE_DETECTED): superseded token presented or
                rotation race lost; every session of the owner is revoked
            Failure(SERVICE_UNAVAILABLE): store failed or timed out

        Exactly one audit entry is written for the attempt.
        """
        old_hash = hash_refresh_token(raw_refresh_token)
        try:
            result, user_id = await self._rotate(old_hash, metadata)
        except StoreUnavailableError as exc:
            await rollback_quietly(self.db)
            logger.error(
                "session_rotate_failed",
                token=token_fingerprint(old_hash),
                detail=exc.detail,
            )
            result, user_id = Failure(AuthErrorKind.SERVICE_UNAVAILABLE), None

        match result:
            case Success():
                await self.audit.record(
                    self.db,
                    AuthEventType.REFRESH,
                    success=True,
                    user_id=user_id,
                    metadata=metadata,
                )
            case Failure(error=AuthErrorKind.TOKEN_REUSE_DETECTED):
                await self.audit.record(
                    self.db,
                    AuthEventType.REUSE_DETECTED,
                    success=False,
                    user_id=user_id,
                    metadata=metadata,
                    error_message=_ROTATION_FAILURES[AuthErrorKind.TOKEN_REUSE_DETECTED],
                )
            case Failure(error=kind):
                await self.audit.record(
                    self.db,
                    AuthEventType.REFRESH,
                    success=False,
                    user_id=user_id,
                    metadata=metadata,
                    error_message=_ROTATION_FAILURES.get(kind, kind.value),
                )
        return result

    async def invalidate(
        self,
        raw_refresh_token: str,
        metadata: RequestMetadata,
        user_id: str | None = None,
    ) -> Result[bool, AuthErrorKind]:
        """
        Revoke the lineage holding ``raw_refresh_token`` (logout).

        Idempotent: an unknown or already revoked token yields Success(False).
        When ``user_id`` is given, only a session owned by that user is revoked.
        """
        token_hash = hash_refresh_token(raw_refresh_token)
        try:
            async with store_call():
                query = (
                    select(Sessions)
                    .where(Sessions.refresh_token_hash == token_hash)  # type: ignore[arg-type]
                    .execution_options(populate_existing=True)
                )
                if user_id is not None:
                    query = query.where(Sessions.user_id == user_id)  # type: ignore[arg-type]
                session = (await self.db.execute(query)).scalar_one_or_none()
                revoked = session is not None
                if session is not None:
                    await self._delete_lineage(session.session_id)
                await self.db.commit()
        except StoreUnavailableError as exc:
            await rollback_quietly(self.db)
            logger.error(
                "session_invalidate_failed",
                token=token_fingerprint(token_hash),
                detail=exc.detail,
            )
            await self.audit.record(
                self.db,
                AuthEventType.LOGOUT,
                success=False,
                user_id=user_id,
                metadata=metadata,
                error_message=_ROTATION_FAILURES[AuthErrorKind.SERVICE_UNAVAILABLE],
            )
            return Failure(AuthErrorKind.SERVICE_UNAVAILABLE)

        await self.audit.record(
            self.db,
            AuthEventType.LOGOUT,
            success=True,
            user_id=user_id,
            metadata=metadata,
            error_message=None if revoked else "session already revoked",
        )
        return Success(revoked)

    async def invalidate_all_for_user(self, user_id: str) -> Result[int, AuthErrorKind]:
        """Revoke every session (and superseded marker) owned by ``user_id``."""
        try:
            async with store_call():
                count = await self._revoke_all(user_id)
                await self.db.commit()
        except StoreUnavailableError as exc:
            await rollback_quietly(self.db)
            logger.error("session_revoke_all_failed", user_id=user_id, detail=exc.detail)
            return Failure(AuthErrorKind.SERVICE_UNAVAILABLE)

        logger.info("sessions_revoked", user_id=user_id, count=count)
        return Success(count)

    async def purge_expired(self, now: datetime | None = None) -> Result[int, AuthErrorKind]:
        """Delete expired sessions and superseded markers; returns sessions removed."""
        cutoff = now or utc_now()
        try:
            async with store_call():
                sessions = await self.db.execute(
                    delete(Sessions).where(Sessions.expires_at < cutoff)  # type: ignore[arg-type]
                )
                await self.db.execute(
                    delete(SupersededRefreshTokens).where(
                        SupersededRefreshTokens.expires_at < cutoff  # type: ignore[arg-type]
                    )
                )
                await self.db.commit()
        except StoreUnavailableError as exc:
            await rollback_quietly(self.db)
            logger.error("session_purge_failed", detail=exc.detail)
            return Failure(AuthErrorKind.SERVICE_UNAVAILABLE)

        return Success(sessions.rowcount or 0)

    async def _rotate(
        self, old_hash: str, metadata: RequestMetadata
    ) -> tuple[Result[TokenPair, AuthErrorKind], str | None]:
        """Rotation state machine; returns the outcome and the owner if known."""
        async with store_call():
            now = utc_now()
            session = (
                await self.db.execute(
                    select(Sessions)
                    .where(Sessions.refresh_token_hash == old_hash)  # type: ignore[arg-type]
                    .execution_options(populate_existing=True)
                )
            ).scalar_one_or_none()

            if session is None:
                owner = await self._superseded_owner(old_hash, now)
                if owner is None:
                    await self.db.rollback()
                    return Failure(AuthErrorKind.INVALID_REFRESH_TOKEN), None
                await self._contain_reuse(owner, old_hash)
                return Failure(AuthErrorKind.TOKEN_REUSE_DETECTED), owner

            session_id = session.session_id
            owner = session.user_id
            lineage_expires_at = session.expires_at

            if lineage_expires_at < now:
                await self._delete_lineage(session_id)
                await self.db.commit()
                return Failure(AuthErrorKind.TOKEN_EXPIRED), owner

            new_raw_token = create_refresh_token()
            swapped = await self.db.execute(
                update(Sessions)
                .where(
                    Sessions.session_id == session_id,  # type: ignore[arg-type]
                    Sessions.refresh_token_hash == old_hash,  # type: ignore[arg-type]
                )
                .values(
                    refresh_token_hash=hash_refresh_token(new_raw_token),
                    expires_at=now + refresh_token_ttl(),
                    last_used_at=now,
                    ip_address=metadata.ip_address,
                    user_agent=metadata.user_agent[:255] if metadata.user_agent else None,
                )
                .execution_options(synchronize_session=False)
            )

            if swapped.rowcount != 1:
                # Another request rotated this token between our read and write
                await self._contain_reuse(owner, old_hash)
                return Failure(AuthErrorKind.TOKEN_REUSE_DETECTED), owner

            self.db.add(
                SupersededRefreshTokens(
                    token_hash=old_hash,
                    session_id=session_id,
                    user_id=owner,
                    superseded_at=now,
                    expires_at=lineage_expires_at,
                )
            )
            await self.db.commit()

        logger.info("session_rotated", user_id=owner, session_id=session_id)
        return Success(_token_pair(owner, new_raw_token)), owner

    async def _superseded_owner(self, token_hash: str, now: datetime) -> str | None:
        marker = (
            await self.db.execute(
                select(SupersededRefreshTokens).where(
                    SupersededRefreshTokens.token_hash == token_hash,  # type: ignore[arg-type]
                    SupersededRefreshTokens.expires_at >= now,  # type: ignore[arg-type]
                )
            )
        ).scalar_one_or_none()
        return marker.user_id if marker else None

    async def _contain_reuse(self, user_id: str, token_hash: str) -> None:
        count = await self._revoke_all(user_id)
        await self.db.commit()
        logger.warning(
            "refresh_token_reuse_detected",
            user_id=user_id,
            token=token_fingerprint(token_hash),
            sessions_revoked=count,
        )

    async def _revoke_all(self, user_id: str) -> int:
        result = await self.db.execute(
            delete(Sessions).where(Sessions.user_id == user_id)  # type: ignore[arg-type]
        )
        await self.db.execute(
            delete(SupersededRefreshTokens).where(
                SupersededRefreshTokens.user_id == user_id  # type: ignore[arg-type]
            )
        )
        return result.rowcount or 0

    async def _delete_lineage(self, session_id: str) -> None:
        await self.db.execute(
            delete(Sessions).where(Sessions.session_id == session_id)  # type: ignore[arg-type]
        )
        await self.db.execute(
            delete(SupersededRefreshTokens).where(
                SupersededRefreshTokens.session_id == session_id  # type: ignore[arg-type]
            )
        )


def _token_pair(user_id: str, raw_refresh_token: str) -> TokenPair:
    access_token, _ = create_access_token(user_id)
    return TokenPair(
        user_id=user_id,
        access_token=access_token,
        refresh_token=raw_refresh_token,
        expires_in=settings.ACCESS_TOKEN_EXPIRE_SECONDS,
    )
