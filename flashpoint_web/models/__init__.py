"""SQLAlchemy ORM models."""

from flashpoint_web.models.base import Base
from flashpoint_web.models.role import Permission, Role, RolePermission
from flashpoint_web.models.session import LoginAttempt, RefreshToken
from flashpoint_web.models.user import User, UserSetting

__all__ = [
    "Base",
    "LoginAttempt",
    "Permission",
    "RefreshToken",
    "Role",
    "RolePermission",
    "User",
    "UserSetting",
]
