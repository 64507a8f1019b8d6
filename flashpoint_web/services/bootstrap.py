"""Seed the system roles, the permission catalog and the default role grants.

Idempotent: rows that already exist are left alone, so it is safe to run on
every deploy.
"""

import logging

from sqlalchemy import select, text
from sqlalchemy.orm import Session

from flashpoint_web.core.database import atomic
from flashpoint_web.core.roles import (
    PERMISSION_CATALOG,
    SYSTEM_ROLE_DESCRIPTIONS,
    SystemRole,
    default_grants,
    split_permission_name,
)
from flashpoint_web.models import Permission, Role, RolePermission

logger = logging.getLogger(__name__)


def seed_auth_catalog(db: Session) -> dict[str, int]:
    """
    Insert missing system roles, permissions and system-role grants.

    Returns counts of inserted rows: {"roles": n, "permissions": n, "grants": n}.
    """
    inserted = {"roles": 0, "permissions": 0, "grants": 0}
    with atomic(db):
        for role, (name, description, priority) in SYSTEM_ROLE_DESCRIPTIONS.items():
            if db.get(Role, int(role)) is None:
                db.add(Role(id=int(role), name=name, description=description, priority=priority))
                inserted["roles"] += 1
        if inserted["roles"] and db.get_bind().dialect.name == "postgresql":
            # System roles are inserted with explicit ids; move the serial past them.
            db.flush()
            db.execute(
                text("SELECT setval(pg_get_serial_sequence('roles', 'id'), (SELECT MAX(id) FROM roles))")
            )

        existing = set(db.execute(select(Permission.name)).scalars())
        for name, description in PERMISSION_CATALOG:
            if name in existing:
                continue
            resource, action = split_permission_name(name)
            db.add(Permission(name=name, description=description, resource=resource, action=action))
            inserted["permissions"] += 1
        db.flush()

        ids_by_name = {
            row.name: row.id for row in db.execute(select(Permission.id, Permission.name)).all()
        }
        linked = {
            tuple(row)
            for row in db.execute(select(RolePermission.role_id, RolePermission.permission_id)).all()
        }
        for role in SystemRole:
            for name in default_grants(role):
                pair = (int(role), ids_by_name[name])
                if pair in linked:
                    continue
                db.add(RolePermission(role_id=pair[0], permission_id=pair[1]))
                inserted["grants"] += 1

    if any(inserted.values()):
        logger.info("Seeded auth catalog", extra=inserted)
    return inserted
