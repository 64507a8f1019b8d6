"""System roles and the seeded permission catalog."""

from enum import IntEnum


class SystemRole(IntEnum):
    """Roles created at install with fixed ids; they can never be modified or deleted."""

    ADMIN = 1
    USER = 2
    GUEST = 3


SYSTEM_ROLE_DESCRIPTIONS: dict[SystemRole, tuple[str, str, int]] = {
    SystemRole.ADMIN: ("admin", "Administrator with full access to all features", 100),
    SystemRole.USER: ("user", "Regular user with standard access", 50),
    SystemRole.GUEST: ("guest", "Guest user with read-only access", 0),
}

SYSTEM_ROLE_IDS = frozenset(int(r) for r in SystemRole)

GUEST_USERNAME = "guest"

# (name, description) in seed order; resource and action are derived from the dotted name.
PERMISSION_CATALOG: tuple[tuple[str, str], ...] = (
    ("games.read", "View and browse games"),
    ("games.play", "Play games in browser"),
    ("games.download", "Download game files"),
    ("playlists.read", "View playlists"),
    ("playlists.create", "Create new playlists"),
    ("playlists.update", "Update existing playlists"),
    ("playlists.delete", "Delete playlists"),
    ("users.read", "View user accounts"),
    ("users.create", "Create new user accounts"),
    ("users.update", "Update user accounts"),
    ("users.delete", "Delete user accounts"),
    ("roles.read", "View roles and permissions"),
    ("roles.create", "Create new roles"),
    ("roles.update", "Update roles and permissions"),
    ("roles.delete", "Delete roles"),
    ("settings.read", "View system settings"),
    ("settings.update", "Update system settings"),
    ("activities.read", "View activity logs"),
)

# Resources the default "user" role is not granted.
ADMIN_ONLY_RESOURCES = frozenset({"users", "roles", "settings", "activities"})

GUEST_ROLE_PERMISSIONS = frozenset({"games.read", "games.play", "playlists.read"})

# Permissions of the anonymous sentinel identity (no token, guest access enabled).
GUEST_PERMISSIONS = frozenset({"games.read", "playlists.read"})


def is_system_role(role_id: int) -> bool:
    """True for the immutable admin/user/guest roles."""
    return role_id in SYSTEM_ROLE_IDS


def split_permission_name(name: str) -> tuple[str, str]:
    """'games.read' -> ('games', 'read')."""
    resource, _, action = name.partition(".")
    return resource, action


def default_grants(role: SystemRole) -> list[str]:
    """Permission names a system role receives when the catalog is seeded."""
    names = [name for name, _ in PERMISSION_CATALOG]
    if role is SystemRole.ADMIN:
        return names
    if role is SystemRole.USER:
        return [n for n in names if split_permission_name(n)[0] not in ADMIN_ONLY_RESOURCES]
    return [n for n in names if n in GUEST_ROLE_PERMISSIONS]
