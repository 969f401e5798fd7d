"""
Database models.

Importing this package registers every table with SQLModel.metadata.
"""

from auth_service.models.auth_log import AuthLogs
from auth_service.models.session import Sessions, SupersededRefreshTokens
from auth_service.models.user import UserBase, Users
from auth_service.models.user_profile import UserProfileBase, UserProfiles

__all__ = [
    "AuthLogs",
    "Sessions",
    "SupersededRefreshTokens",
    "UserBase",
    "UserProfileBase",
    "UserProfiles",
    "Users",
]
