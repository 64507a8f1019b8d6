"""In-process, two-tier TTL cache of permission sets.

User tier (5 min default) maps user id -> permission names; role tier (10 min
default) maps role id -> permission names. Entries expire by TTL, by explicit
invalidation, or with the process. Any role change clears the whole user tier:
there is no role -> users index, and a stale permission is worse than a miss.

The cache is an explicitly constructed object owned by the application
lifespan, not a module global, so TTLs and the clock can be injected in tests.
"""

import logging
import threading
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass

logger = logging.getLogger(__name__)

DEFAULT_USER_TTL_SEC = 5 * 60
DEFAULT_ROLE_TTL_SEC = 10 * 60
DEFAULT_SWEEP_INTERVAL_SEC = 5 * 60


@dataclass(frozen=True)
class _Entry:
    permissions: frozenset[str]
    expires_at: float


class PermissionCache:
    def __init__(
        self,
        user_ttl: float = DEFAULT_USER_TTL_SEC,
        role_ttl: float = DEFAULT_ROLE_TTL_SEC,
        sweep_interval: float = DEFAULT_SWEEP_INTERVAL_SEC,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.user_ttl = user_ttl
        self.role_ttl = role_ttl
        self.sweep_interval = sweep_interval
        self._clock = clock
        self._lock = threading.Lock()
        self._users: dict[int, _Entry] = {}
        self._roles: dict[int, _Entry] = {}
        # Bumped by every user-tier invalidation; lets a writer detect that the
        # set it resolved was computed before an invalidation landed.
        self._user_generation = 0
        self._stop_event = threading.Event()
        self._sweeper: threading.Thread | None = None

    def start(self) -> None:
        """Start the background sweep (idempotent)."""
        with self._lock:
            if self._sweeper is not None and self._sweeper.is_alive():
                return
            self._stop_event.clear()
            self._sweeper = threading.Thread(
                target=self._run_sweeper,
                name="permission-cache-sweeper",
                daemon=True,
            )
            self._sweeper.start()
        logger.info("Permission cache sweeper started", extra={"interval_sec": self.sweep_interval})

    def stop(self) -> None:
        """Stop the background sweep and wait for it to exit."""
        self._stop_event.set()
        sweeper = self._sweeper
        if sweeper is not None:
            sweeper.join(timeout=5)
            self._sweeper = None
            logger.info("Permission cache sweeper stopped")

    @property
    def running(self) -> bool:
        return self._sweeper is not None and self._sweeper.is_alive()

    def _run_sweeper(self) -> None:
        while not self._stop_event.wait(self.sweep_interval):
            try:
                self.cleanup()
            except Exception:
                logger.exception("Permission cache sweep failed")

    @property
    def user_generation(self) -> int:
        """Token to pass back to set_user_permissions after resolving on a miss."""
        with self._lock:
            return self._user_generation

    def get_user_permissions(self, user_id: int) -> frozenset[str] | None:
        """Cached set, or None on a miss or an expired entry."""
        with self._lock:
            entry = self._users.get(user_id)
            if entry is None:
                return None
            if self._clock() >= entry.expires_at:
                del self._users[user_id]
                logger.debug("User permissions expired", extra={"user_id": user_id})
                return None
            return entry.permissions

    def set_user_permissions(
        self,
        user_id: int,
        permissions: Iterable[str],
        generation: int | None = None,
    ) -> bool:
        """
        Store a user's set. With `generation`, the write is dropped when an
        invalidation happened after that generation was read.
        """
        with self._lock:
            if generation is not None and generation != self._user_generation:
                logger.debug("Dropped stale permission set", extra={"user_id": user_id})
                return False
            self._users[user_id] = _Entry(frozenset(permissions), self._clock() + self.user_ttl)
            return True

    def invalidate_user(self, user_id: int) -> None:
        with self._lock:
            self._users.pop(user_id, None)
            self._user_generation += 1
        logger.info("Invalidated permission cache for user", extra={"user_id": user_id})

    def invalidate_all_users(self) -> None:
        with self._lock:
            count = len(self._users)
            self._users.clear()
            self._user_generation += 1
        logger.info("Invalidated all user permissions", extra={"entries": count})

    def get_role_permissions(self, role_id: int) -> frozenset[str] | None:
        with self._lock:
            entry = self._roles.get(role_id)
            if entry is None:
                return None
            if self._clock() >= entry.expires_at:
                del self._roles[role_id]
                return None
            return entry.permissions

    def set_role_permissions(self, role_id: int, permissions: Iterable[str]) -> None:
        with self._lock:
            self._roles[role_id] = _Entry(frozenset(permissions), self._clock() + self.role_ttl)

    def invalidate_role(self, role_id: int) -> None:
        """Drop the role entry and, conservatively, every cached user set."""
        with self._lock:
            self._roles.pop(role_id, None)
            count = len(self._users)
            self._users.clear()
            self._user_generation += 1
        logger.info(
            "Invalidated permission cache for role and all users",
            extra={"role_id": role_id, "user_entries": count},
        )

    def invalidate_all_roles(self) -> None:
        with self._lock:
            count = len(self._roles)
            self._roles.clear()
        logger.info("Invalidated all role permissions", extra={"entries": count})

    def clear_all(self) -> None:
        with self._lock:
            user_count, role_count = len(self._users), len(self._roles)
            self._users.clear()
            self._roles.clear()
            self._user_generation += 1
        logger.info("Cleared permission cache", extra={"users": user_count, "roles": role_count})

    def cleanup(self) -> tuple[int, int]:
        """Purge expired entries from both tiers; returns (users_removed, roles_removed)."""
        with self._lock:
            now = self._clock()
            expired_users = [k for k, e in self._users.items() if now >= e.expires_at]
            for key in expired_users:
                del self._users[key]
            expired_roles = [k for k, e in self._roles.items() if now >= e.expires_at]
            for key in expired_roles:
                del self._roles[key]
        if expired_users or expired_roles:
            logger.debug(
                "Permission cache sweep",
                extra={"users_removed": len(expired_users), "roles_removed": len(expired_roles)},
            )
        return len(expired_users), len(expired_roles)

    def get_stats(self) -> dict[str, int]:
        with self._lock:
            users, roles = len(self._users), len(self._roles)
        return {"user_cache_size": users, "role_cache_size": roles, "total_size": users + roles}
