"""ORM models for roles, the permission catalog and their many-to-many join."""

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import relationship

from flashpoint_web.models.base import Base, TimestampMixin


class Role(TimestampMixin, Base):
    """
    Named bundle of permissions. Ids 1-3 are the immutable system roles.

    priority only orders roles for display; it does not imply inheritance.
    """

    __tablename__ = "roles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(50), nullable=False, unique=True)
    description = Column(Text, nullable=True)
    priority = Column(Integer, nullable=False, default=0)

    permissions = relationship(
        "Permission",
        secondary="role_permissions",
        viewonly=True,
        order_by="Permission.name",
    )


# Role names are unique regardless of case ("Editor" collides with "editor").
Index("uq_roles_name_lower", func.lower(Role.name), unique=True)


class Permission(Base):
    """Catalog entry named resource.action; seeded at install, read-only at runtime."""

    __tablename__ = "permissions"
    __table_args__ = (Index("ix_permissions_resource_action", "resource", "action"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False, unique=True)
    description = Column(Text, nullable=True)
    resource = Column(String(50), nullable=False)
    action = Column(String(50), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class RolePermission(Base):
    __tablename__ = "role_permissions"
    __table_args__ = (
        UniqueConstraint("role_id", "permission_id", name="uq_role_permissions_role_permission"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    role_id = Column(Integer, ForeignKey("roles.id", ondelete="CASCADE"), nullable=False, index=True)
    permission_id = Column(
        Integer,
        ForeignKey("permissions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
