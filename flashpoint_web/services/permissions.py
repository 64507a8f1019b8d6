"""Permission resolver: effective permission names of a user or a role."""

from sqlalchemy import select
from sqlalchemy.orm import Session

from flashpoint_web.models import Permission, RolePermission, User


class PermissionResolver:
    """Single-join lookups; roles do not inherit from each other."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def resolve(self, user_id: int) -> frozenset[str]:
        """user -> role -> role_permissions -> permissions."""
        rows = self.db.execute(
            select(Permission.name)
            .join(RolePermission, RolePermission.permission_id == Permission.id)
            .join(User, User.role_id == RolePermission.role_id)
            .where(User.id == user_id)
            .distinct()
        ).scalars()
        return frozenset(rows)

    def resolve_role(self, role_id: int) -> frozenset[str]:
        rows = self.db.execute(
            select(Permission.name)
            .join(RolePermission, RolePermission.permission_id == Permission.id)
            .where(RolePermission.role_id == role_id)
        ).scalars()
        return frozenset(rows)
