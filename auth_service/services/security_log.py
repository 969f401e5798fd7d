"""
Security audit trail.

Every register/login/refresh/logout/reuse-detected outcome is written as one
``auth_logs`` row. Writing the audit row never changes the outcome of the
operation being audited: a failed write is rolled back, logged at error
level and counted (the count is reported by /health).

Entries are written through a short-lived session on the caller's engine,
so a failed write rolls back only the audit row and never expires or
discards the caller's objects. Callers commit their own work first.
"""

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from auth_service.core.database import store_call
from auth_service.core.errors import StoreUnavailableError
from auth_service.core.logging import get_logger
from auth_service.models.auth_log import AuthLogs

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class RequestMetadata:
    """Originating client details, recorded for audit only."""

    ip_address: str | None = None
    user_agent: str | None = None


def _clip(value: str | None, limit: int) -> str | None:
    if value is None:
        return None
    return value[:limit]


class SecurityLogger:
    """
    Append-only writer for the auth_logs table.

    One instance lives for the whole process (see auth_service.main); it
    holds the count of audit writes that failed.
    """

    def __init__(self) -> None:
        self.write_failures = 0

    async def record(
        self,
        db: AsyncSession,
        event_type: str,
        *,
        success: bool,
        user_id: str | None = None,
        metadata: RequestMetadata | None = None,
        error_message: str | None = None,
    ) -> None:
        """
        Append one audit entry.

        Args:
            db: Caller's session; its engine receives the entry
            event_type: AuthEventType value
            success: Outcome of the audited operation
            user_id: Resolved user, if known
            metadata: Client IP / user agent
            error_message: Log-safe failure reason (no passwords, no raw tokens)
        """
        metadata = metadata or RequestMetadata()
        entry = AuthLogs(
            user_id=user_id,
            event_type=event_type,
            success=success,
            ip_address=_clip(metadata.ip_address, 45),
            user_agent=_clip(metadata.user_agent, 255),
            error_message=_clip(error_message, 500),
        )

        log = logger.info if success else logger.warning
        log(
            "auth_event",
            event_type=event_type,
            success=success,
            user_id=user_id,
            ip_address=metadata.ip_address,
            error=error_message,
        )

        try:
            async with store_call(), AsyncSession(db.bind, expire_on_commit=False) as audit_db:
                audit_db.add(entry)
                await audit_db.commit()
        except StoreUnavailableError as exc:
            self.write_failures += 1
            logger.error(
                "audit_log_write_failed",
                event_type=event_type,
                user_id=user_id,
                detail=exc.detail,
                write_failures=self.write_failures,
            )
