#!/usr/bin/env python3
"""
Remove expired sessions and superseded refresh-token markers.

Expired rows can no longer authenticate anyone; this job only keeps the
tables small. Audit log retention is handled elsewhere.

Usage:
    # Dry run (shows what would be deleted)
    python scripts/cleanup_expired_sessions.py --dry-run

    # Delete expired rows
    python scripts/cleanup_expired_sessions.py
"""

import argparse
import asyncio
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from auth_service.core.database import engine, get_async_session, utc_now
from auth_service.core.logging import configure_logging, get_logger
from auth_service.core.result import Failure, Success
from auth_service.models.session import Sessions, SupersededRefreshTokens
from auth_service.services.security_log import SecurityLogger
from auth_service.services.session_store import SessionStore

logger = get_logger(__name__)


async def count_expired(db: AsyncSession, now: datetime) -> tuple[int, int]:
    """Return (expired sessions, expired superseded markers)."""
    sessions = await db.scalar(
        select(func.count()).select_from(Sessions).where(Sessions.expires_at < now)  # type: ignore[arg-type]
    )
    markers = await db.scalar(
        select(func.count())
        .select_from(SupersededRefreshTokens)
        .where(SupersededRefreshTokens.expires_at < now)  # type: ignore[arg-type]
    )
    return sessions or 0, markers or 0


async def main() -> int:
    parser = argparse.ArgumentParser(description="Delete expired sessions")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would be deleted without actually deleting",
    )
    args = parser.parse_args()

    configure_logging()
    now = utc_now()

    async with get_async_session() as db:
        sessions, markers = await count_expired(db, now)
        print(f"Expired sessions:           {sessions}")
        print(f"Expired superseded markers: {markers}")

        if args.dry_run:
            print("\n[DRY RUN] No changes made")
            return 0

        match await SessionStore(db, SecurityLogger()).purge_expired(now):
            case Success(value=deleted):
                logger.info("expired_sessions_purged", sessions=deleted, markers=markers)
                print(f"✓ Deleted {deleted} expired sessions")
                exit_code = 0
            case Failure(error=kind):
                print(f"\nERROR: cleanup failed ({kind.value})")
                exit_code = 1

    await engine.dispose()
    return exit_code


if __name__ == "__main__":
    raise SystemExit(asyncio.run(main()))
