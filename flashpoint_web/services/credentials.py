"""Credential store: password verification and account rows.

Lookups never reveal whether a username exists: unknown users and wrong
passwords raise the same InvalidCredentialsError after the same bcrypt work.
"""

import logging
from collections.abc import Callable
from datetime import datetime

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from flashpoint_web.core.database import atomic
from flashpoint_web.core.exceptions import (
    ConflictError,
    InvalidCredentialsError,
    NotFoundError,
    PermissionDeniedError,
)
from flashpoint_web.core.roles import SystemRole
from flashpoint_web.core.security import (
    burn_password_check,
    hash_password,
    utc_now,
    verify_password,
)
from flashpoint_web.models import RefreshToken, Role, User, UserSetting

logger = logging.getLogger(__name__)


class CredentialStore:
    """Reads and writes the users table; the only place passwords are hashed or compared."""

    def __init__(
        self,
        db: Session,
        bcrypt_rounds: int,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.db = db
        self.bcrypt_rounds = bcrypt_rounds
        self._now = clock

    def verify(self, username: str, password: str) -> User:
        """Return the user for a matching username/password pair or raise InvalidCredentialsError."""
        user = self.db.execute(select(User).where(User.username == username)).scalar_one_or_none()
        if user is None:
            burn_password_check(password)
            raise InvalidCredentialsError()
        if not verify_password(password, user.password_hash):
            raise InvalidCredentialsError()
        return user

    def get_user(self, user_id: int) -> User | None:
        return self.db.get(User, user_id)

    def list_users(self) -> list[User]:
        return list(self.db.execute(select(User).order_by(User.id)).scalars())

    def get_active_user(self, user_id: int) -> User | None:
        """User by id only if the account is active (re-checked on every request)."""
        return self.db.execute(
            select(User).where(User.id == user_id, User.is_active.is_(True))
        ).scalar_one_or_none()

    def count_users(self) -> int:
        return self.db.execute(select(func.count()).select_from(User)).scalar_one()

    def ensure_unique(self, username: str, email: str) -> None:
        """Raise ConflictError if username or email is taken (case-insensitive)."""
        taken = self.db.execute(
            select(User.id).where(func.lower(User.username) == username.lower())
        ).first()
        if taken is not None:
            raise ConflictError("Username already exists", code="USERNAME_TAKEN")
        taken = self.db.execute(
            select(User.id).where(func.lower(User.email) == email.lower())
        ).first()
        if taken is not None:
            raise ConflictError("Email already exists", code="EMAIL_TAKEN")

    def add_user(
        self,
        username: str,
        email: str,
        password_hash: str,
        role_id: int,
        is_active: bool = True,
        user_settings: dict[str, str] | None = None,
    ) -> User:
        """Insert a user (and its default settings) into the current transaction without committing."""
        user = User(
            username=username,
            email=email,
            password_hash=password_hash,
            role_id=role_id,
            is_active=is_active,
        )
        self.db.add(user)
        self.db.flush()
        for key, value in (user_settings or {}).items():
            self.db.add(UserSetting(user_id=user.id, setting_key=key, setting_value=value))
        return user

    def create_user(
        self,
        username: str,
        email: str,
        password: str,
        role_id: int,
        is_active: bool = True,
    ) -> User:
        """Hash the password and insert the user; uniqueness check and insert share one transaction."""
        password_hash = hash_password(password, self.bcrypt_rounds)
        try:
            with atomic(self.db):
                if self.db.get(Role, role_id) is None:
                    raise NotFoundError("Role not found")
                self.ensure_unique(username, email)
                user = self.add_user(username, email, password_hash, role_id, is_active)
        except IntegrityError as e:
            raise ConflictError("Username or email already exists") from e
        logger.info("User created", extra={"user_id": user.id, "role_id": role_id})
        return user

    def touch_last_login(self, user: User) -> None:
        with atomic(self.db):
            user.last_login_at = self._now()

    def change_password(self, user_id: int, current_password: str, new_password: str) -> None:
        """Self-service change: the current password must verify first."""
        user = self.get_user(user_id)
        if user is None:
            raise NotFoundError("User not found")
        if not verify_password(current_password, user.password_hash):
            raise InvalidCredentialsError("Current password is incorrect")
        self.set_password(user_id, new_password)

    def set_password(self, user_id: int, new_password: str) -> None:
        password_hash = hash_password(new_password, self.bcrypt_rounds)
        with atomic(self.db):
            user = self.get_user(user_id)
            if user is None:
                raise NotFoundError("User not found")
            user.password_hash = password_hash
        logger.info("Password updated", extra={"user_id": user_id})

    def lock_admin_role(self) -> None:
        """
        Take a write lock on the admin role row for the rest of the transaction.

        Writers that count admins (first registration, last-admin guards) call this
        first so their check and their write cannot interleave. A no-op UPDATE
        rather than SELECT FOR UPDATE, which SQLite ignores.
        """
        self.db.execute(
            update(Role)
            .where(Role.id == SystemRole.ADMIN)
            .values(updated_at=Role.updated_at)
            .execution_options(synchronize_session=False)
        )

    def _is_last_active_admin(self, user: User) -> bool:
        if user.role_id != SystemRole.ADMIN or not user.is_active:
            return False
        admins = self.db.execute(
            select(func.count())
            .select_from(User)
            .where(User.role_id == SystemRole.ADMIN, User.is_active.is_(True))
        ).scalar_one()
        return admins <= 1

    def update_user(
        self,
        user_id: int,
        role_id: int | None = None,
        is_active: bool | None = None,
    ) -> User:
        """Change role and/or active flag; the last active admin can be neither demoted nor deactivated."""
        with atomic(self.db):
            self.lock_admin_role()
            user = self.get_user(user_id)
            if user is None:
                raise NotFoundError("User not found")
            demoting = role_id is not None and role_id != user.role_id
            deactivating = is_active is False and user.is_active
            if (demoting or deactivating) and self._is_last_active_admin(user):
                raise PermissionDeniedError(
                    "Cannot demote or deactivate the last admin user", code="LAST_ADMIN"
                )
            if role_id is not None:
                if self.db.get(Role, role_id) is None:
                    raise NotFoundError("Role not found")
                user.role_id = role_id
            if is_active is not None:
                user.is_active = is_active
        self.db.refresh(user)
        return user

    def delete_user(self, user_id: int) -> None:
        with atomic(self.db):
            self.lock_admin_role()
            user = self.get_user(user_id)
            if user is None:
                raise NotFoundError("User not found")
            if self._is_last_active_admin(user):
                raise PermissionDeniedError("Cannot delete the last admin user", code="LAST_ADMIN")
            # Explicit child deletes: SQLite does not enforce ON DELETE CASCADE by default.
            self.db.query(RefreshToken).filter(RefreshToken.user_id == user_id).delete(
                synchronize_session=False
            )
            self.db.query(UserSetting).filter(UserSetting.user_id == user_id).delete(
                synchronize_session=False
            )
            self.db.delete(user)
        logger.info("User deleted", extra={"user_id": user_id})
