"""
API v1 Router

Protected resources that consume the auth core's Bearer middleware.
"""

from fastapi import APIRouter

from auth_service.api.v1 import profiles

router = APIRouter()

router.include_router(profiles.router)

__all__ = ["router"]
