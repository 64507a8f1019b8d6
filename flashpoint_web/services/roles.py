"""Role management: CRUD for roles and their permission sets.

Guards:
- system roles (admin/user/guest) can never be renamed, re-permissioned or deleted;
- role names are unique case-insensitively, checked and inserted in one transaction
  and backed by a unique index so concurrent creates cannot both succeed;
- a caller can only grant permissions it already holds;
- the permission cache is invalidated only after the transaction commits.
"""

import logging
from collections.abc import Iterable, Sequence
from collections.abc import Set as AbstractSet

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from flashpoint_web.core.database import atomic
from flashpoint_web.core.exceptions import ConflictError, NotFoundError, PermissionDeniedError
from flashpoint_web.core.roles import is_system_role
from flashpoint_web.models import Permission, Role, RolePermission, User
from flashpoint_web.services.permission_cache import PermissionCache
from flashpoint_web.services.permissions import PermissionResolver

logger = logging.getLogger(__name__)

ROLE_NAME_TAKEN = "Role name already exists"


def _unique_ids(ids: Iterable[int]) -> list[int]:
    """Drop duplicates, keep first-seen order."""
    return list(dict.fromkeys(int(i) for i in ids))


class RoleManager:
    def __init__(self, db: Session, cache: PermissionCache) -> None:
        self.db = db
        self.cache = cache

    def get_roles(self) -> list[Role]:
        return list(
            self.db.execute(select(Role).order_by(Role.priority.desc(), Role.name.asc())).scalars()
        )

    def get_role(self, role_id: int) -> Role:
        role = self.db.get(Role, role_id)
        if role is None:
            raise NotFoundError("Role not found")
        return role

    def get_permissions(self) -> list[Permission]:
        return list(
            self.db.execute(
                select(Permission).order_by(Permission.resource, Permission.action)
            ).scalars()
        )

    def get_role_permission_names(self, role_id: int) -> frozenset[str]:
        """Permission names of a role through the role tier of the cache."""
        cached = self.cache.get_role_permissions(role_id)
        if cached is not None:
            return cached
        names = PermissionResolver(self.db).resolve_role(role_id)
        self.cache.set_role_permissions(role_id, names)
        return names

    def _guard_system_role(self, role_id: int, action: str) -> None:
        if is_system_role(role_id):
            raise PermissionDeniedError(f"Cannot {action} system roles", code="SYSTEM_ROLE_IMMUTABLE")

    def _name_taken(self, name: str, exclude_id: int | None = None) -> bool:
        stmt = select(Role.id).where(func.lower(Role.name) == name.lower())
        if exclude_id is not None:
            stmt = stmt.where(Role.id != exclude_id)
        return self.db.execute(stmt).first() is not None

    def _permission_names(self, permission_ids: Sequence[int]) -> dict[int, str]:
        if not permission_ids:
            return {}
        rows = self.db.execute(
            select(Permission.id, Permission.name).where(Permission.id.in_(permission_ids))
        ).all()
        return {row.id: row.name for row in rows}

    def _require_permissions_exist(self, permission_ids: Sequence[int]) -> None:
        known = self._permission_names(permission_ids)
        missing = [pid for pid in permission_ids if pid not in known]
        if missing:
            raise NotFoundError(
                "Permission(s) not found: " + ", ".join(str(pid) for pid in missing)
            )

    def _replace_links(self, role_id: int, permission_ids: Sequence[int]) -> None:
        """Delete-all then insert-all; caller owns the transaction."""
        self.db.execute(delete(RolePermission).where(RolePermission.role_id == role_id))
        for permission_id in permission_ids:
            self.db.add(RolePermission(role_id=role_id, permission_id=permission_id))
        self.db.flush()

    def validate_permission_escalation(
        self,
        permission_ids: Iterable[int],
        acting_permissions: AbstractSet[str],
    ) -> None:
        """
        Every requested permission must already be held by the acting user.

        Raises PermissionDeniedError naming the permissions that would be an
        escalation. Ids that do not exist cannot be held and are rejected too.
        An empty request always passes.
        """
        requested = _unique_ids(permission_ids)
        if not requested:
            return
        names = self._permission_names(requested)
        offending = [
            names.get(pid, f"#{pid}")
            for pid in requested
            if names.get(pid) not in acting_permissions
        ]
        if offending:
            logger.warning(
                "Permission escalation rejected",
                extra={"offending_permissions": ",".join(offending)},
            )
            raise PermissionDeniedError(
                "Cannot assign permissions you do not possess: " + ", ".join(offending),
                code="PERMISSION_ESCALATION",
            )

    def create_role(
        self,
        name: str,
        description: str | None = None,
        priority: int = 0,
        permission_ids: Iterable[int] = (),
        acting_permissions: AbstractSet[str] | None = None,
    ) -> Role:
        """Create a role and its permission links atomically."""
        name = name.strip()
        ids = _unique_ids(permission_ids)
        if acting_permissions is not None:
            self.validate_permission_escalation(ids, acting_permissions)
        try:
            with atomic(self.db):
                if self._name_taken(name):
                    raise ConflictError(ROLE_NAME_TAKEN, code="ROLE_NAME_TAKEN")
                self._require_permissions_exist(ids)
                role = Role(name=name, description=description, priority=priority)
                self.db.add(role)
                self.db.flush()
                role_id = role.id
                self._replace_links(role_id, ids)
        except IntegrityError as e:
            # A concurrent create won the race between our check and our insert.
            raise ConflictError(ROLE_NAME_TAKEN, code="ROLE_NAME_TAKEN") from e
        logger.info("Role created", extra={"role_id": role_id, "permission_count": len(ids)})
        return self.get_role(role_id)

    def update_role(
        self,
        role_id: int,
        name: str | None = None,
        description: str | None = None,
        priority: int | None = None,
    ) -> Role:
        """Update role metadata (name, description, priority)."""
        self._guard_system_role(role_id, "modify")
        try:
            with atomic(self.db):
                role = self.get_role(role_id)
                if name is not None:
                    name = name.strip()
                    if self._name_taken(name, exclude_id=role_id):
                        raise ConflictError(ROLE_NAME_TAKEN, code="ROLE_NAME_TAKEN")
                    role.name = name
                if description is not None:
                    role.description = description
                if priority is not None:
                    role.priority = priority
        except IntegrityError as e:
            raise ConflictError(ROLE_NAME_TAKEN, code="ROLE_NAME_TAKEN") from e
        return self.get_role(role_id)

    def update_role_permissions(
        self,
        role_id: int,
        permission_ids: Iterable[int],
        acting_permissions: AbstractSet[str] | None = None,
    ) -> Role:
        """Replace the role's permission set, then invalidate caches after commit."""
        self._guard_system_role(role_id, "modify permissions of")
        ids = _unique_ids(permission_ids)
        if acting_permissions is not None:
            self.validate_permission_escalation(ids, acting_permissions)
        with atomic(self.db):
            self.get_role(role_id)
            self._require_permissions_exist(ids)
            self._replace_links(role_id, ids)
        self.cache.invalidate_role(role_id)
        logger.info(
            "Updated role permissions",
            extra={"role_id": role_id, "permission_count": len(ids)},
        )
        return self.get_role(role_id)

    def delete_role(self, role_id: int) -> None:
        """Delete a role that no user holds, then invalidate caches after commit."""
        self._guard_system_role(role_id, "delete")
        with atomic(self.db):
            role = self.get_role(role_id)
            user_count = self.db.execute(
                select(func.count()).select_from(User).where(User.role_id == role_id)
            ).scalar_one()
            if user_count > 0:
                raise ConflictError(
                    f"Cannot delete role: {user_count} users are assigned to this role",
                    code="ROLE_IN_USE",
                )
            self.db.execute(delete(RolePermission).where(RolePermission.role_id == role_id))
            self.db.delete(role)
        self.cache.invalidate_role(role_id)
        logger.info("Role deleted", extra={"role_id": role_id})
