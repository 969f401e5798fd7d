"""
User profile endpoints.

Every route requires a Bearer access token, and a caller may only touch
the profile whose ``userID`` matches the token subject.
"""

from fastapi import APIRouter, Response, status
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError

from auth_service.api.dependencies import DbSession
from auth_service.core.auth import CurrentUserId
from auth_service.core.database import rollback_quietly, store_call, utc_now
from auth_service.core.errors import AuthError, AuthErrorKind
from auth_service.core.logging import get_logger
from auth_service.models.user_profile import UserProfiles
from auth_service.schemas.profile import (
    IdentityStatusResponse,
    ProfileResponse,
    ProfileUpsertRequest,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/users", tags=["Profiles"])


def _require_owner(user_id: str, current_user_id: str) -> None:
    if user_id != current_user_id:
        raise AuthError(AuthErrorKind.FORBIDDEN, "You can only access your own profile")


def _profile_not_found() -> AuthError:
    return AuthError(
        AuthErrorKind.NOT_FOUND,
        "No profile exists for this user",
        code="profile_not_found",
    )


def _to_response(profile: UserProfiles) -> ProfileResponse:
    return ProfileResponse(
        user_id=profile.user_id,
        screen_name=profile.screen_name,
        birthday=profile.birthday,
        avatar_url=profile.avatar_url,
        created_at=profile.created_at,
        updated_at=profile.updated_at,
    )


def _apply(profile: UserProfiles, body: ProfileUpsertRequest) -> None:
    profile.screen_name = body.screen_name
    profile.birthday = body.birthday
    profile.avatar_url = body.avatar_url
    profile.updated_at = utc_now()


async def _get_profile(db: DbSession, user_id: str) -> UserProfiles | None:
    async with store_call():
        result = await db.execute(
            select(UserProfiles).where(UserProfiles.user_id == user_id)  # type: ignore[arg-type]
        )
        return result.scalar_one_or_none()


@router.get("/{user_id}/profile", response_model=ProfileResponse)
async def get_profile(user_id: str, current_user_id: CurrentUserId, db: DbSession) -> ProfileResponse:
    """Fetch the caller's profile."""
    _require_owner(user_id, current_user_id)
    profile = await _get_profile(db, user_id)
    if profile is None:
        raise _profile_not_found()
    return _to_response(profile)


@router.put("/{user_id}/profile", response_model=ProfileResponse)
async def upsert_profile(
    user_id: str,
    body: ProfileUpsertRequest,
    current_user_id: CurrentUserId,
    db: DbSession,
) -> ProfileResponse:
    """Create the caller's profile, or replace its fields if one exists."""
    _require_owner(user_id, current_user_id)

    profile = await _get_profile(db, user_id)
    if profile is None:
        profile = UserProfiles(
            user_id=user_id,
            screen_name=body.screen_name,
            birthday=body.birthday,
            avatar_url=body.avatar_url,
        )
        db.add(profile)
        try:
            async with store_call():
                await db.commit()
        except IntegrityError:
            # A concurrent first PUT created the row; apply ours as an update
            await rollback_quietly(db)
            profile = await _get_profile(db, user_id)
            if profile is None:
                raise
            _apply(profile, body)
            async with store_call():
                await db.commit()
    else:
        _apply(profile, body)
        async with store_call():
            await db.commit()

    async with store_call():
        await db.refresh(profile)

    logger.info("profile_saved", user_id=user_id)
    return _to_response(profile)


@router.delete("/{user_id}/profile", status_code=status.HTTP_204_NO_CONTENT)
async def delete_profile(user_id: str, current_user_id: CurrentUserId, db: DbSession) -> Response:
    """Delete the caller's profile."""
    _require_owner(user_id, current_user_id)

    async with store_call():
        result = await db.execute(
            delete(UserProfiles).where(UserProfiles.user_id == user_id)  # type: ignore[arg-type]
        )
        await db.commit()

    if not result.rowcount:
        raise _profile_not_found()

    logger.info("profile_deleted", user_id=user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{user_id}/identity-status", response_model=IdentityStatusResponse)
async def identity_status(
    user_id: str, current_user_id: CurrentUserId, db: DbSession
) -> IdentityStatusResponse:
    """Whether the caller has completed identity setup (created a profile)."""
    _require_owner(user_id, current_user_id)
    profile = await _get_profile(db, user_id)
    return IdentityStatusResponse(has_completed_identity_setup=profile is not None)
