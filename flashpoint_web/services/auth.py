"""Auth orchestrator: login, register, refresh, verify and logout flows.

This is the only entry point other subsystems (routes, middleware) call. Each
flow is a short pipeline over the ledger, credential store, token service and
permission cache:

login:    lockout check -> credential check -> record attempt -> issue tokens -> cache populate
register: registration enabled -> uniqueness -> first user? -> create user -> seed settings -> issue tokens
refresh:  rotate refresh token -> permissions through the cache
verify:   verify access token -> load active user -> permissions through the cache
logout:   revoke the presented refresh token (idempotent)
"""

import logging
from collections.abc import Callable
from datetime import datetime

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from flashpoint_web.core.config import Settings
from flashpoint_web.core.database import atomic
from flashpoint_web.core.exceptions import (
    AccountInactiveError,
    AuthenticationError,
    ConflictError,
    InvalidCredentialsError,
    LockedOutError,
    NotFoundError,
    RegistrationDisabledError,
)
from flashpoint_web.core.roles import GUEST_PERMISSIONS, GUEST_USERNAME, SystemRole
from flashpoint_web.core.security import hash_password, utc_now
from flashpoint_web.models import User
from flashpoint_web.schemas.auth import AuthResponse, AuthUser
from flashpoint_web.services.credentials import CredentialStore
from flashpoint_web.services.login_attempts import LoginAttemptLedger, clamp_lockout_minutes
from flashpoint_web.services.permission_cache import PermissionCache
from flashpoint_web.services.permissions import PermissionResolver
from flashpoint_web.services.settings_provider import SettingsProvider
from flashpoint_web.services.tokens import TokenService

logger = logging.getLogger(__name__)


class AuthOrchestrator:
    """Composes the auth components for one request-scoped DB session."""

    def __init__(
        self,
        db: Session,
        settings: Settings,
        settings_provider: SettingsProvider,
        cache: PermissionCache,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.db = db
        self.settings = settings
        self.settings_provider = settings_provider
        self.cache = cache
        self.credentials = CredentialStore(db, settings.BCRYPT_ROUNDS, clock=clock)
        self.ledger = LoginAttemptLedger(db, clock=clock)
        self.tokens = TokenService(db, settings, clock=clock)
        self.resolver = PermissionResolver(db)

    def get_permissions(self, user_id: int) -> frozenset[str]:
        """
        Cached permission set, resolved and stored on a miss.

        A cache that cannot be read counts as a miss; it never grants anything.
        """
        try:
            cached = self.cache.get_user_permissions(user_id)
            generation = self.cache.user_generation
        except Exception:
            logger.warning("Permission cache read failed; resolving", exc_info=True)
            cached, generation = None, None
        if cached is not None:
            return cached
        permissions = self.resolver.resolve(user_id)
        if generation is not None:
            try:
                self.cache.set_user_permissions(user_id, permissions, generation=generation)
            except Exception:
                logger.warning("Permission cache write failed", exc_info=True)
        return permissions

    def _auth_user(self, user: User, permissions: frozenset[str]) -> AuthUser:
        return AuthUser(
            id=user.id,
            username=user.username,
            email=user.email,
            role=user.role_name,
            permissions=sorted(permissions),
        )

    def login(self, username: str, password: str, ip_address: str) -> AuthResponse:
        auth_settings = self.settings_provider.get_auth_settings()
        lockout_minutes = clamp_lockout_minutes(auth_settings.lockout_duration_minutes)
        if self.ledger.is_locked(
            username, ip_address, auth_settings.max_login_attempts, lockout_minutes
        ):
            raise LockedOutError(lockout_minutes)

        try:
            user = self.credentials.verify(username, password)
            if not user.is_active:
                raise InvalidCredentialsError()
        except InvalidCredentialsError:
            self.ledger.record(username, ip_address, False)
            logger.info("Login failed", extra={"username": username, "ip_address": ip_address})
            raise
        self.ledger.record(username, ip_address, True)

        self.credentials.touch_last_login(user)
        tokens = self.tokens.issue(user)
        permissions = self.get_permissions(user.id)
        logger.info(
            "Login succeeded",
            extra={"user_id": user.id, "permission_count": len(permissions)},
        )
        return AuthResponse(user=self._auth_user(user, permissions), tokens=tokens)

    def register(self, username: str, email: str, password: str) -> AuthResponse:
        """
        Create an account. The first account ever created becomes admin and is
        allowed even when registration is disabled.
        """
        password_hash = hash_password(password, self.settings.BCRYPT_ROUNDS)
        auth_settings = self.settings_provider.get_auth_settings()
        user_defaults = self.settings_provider.get_user_defaults()
        try:
            with atomic(self.db):
                # Only one concurrent registration can observe an empty users table.
                self.credentials.lock_admin_role()
                is_initial_setup = self.credentials.count_users() == 0
                if not is_initial_setup and not auth_settings.user_registration_enabled:
                    raise RegistrationDisabledError()
                self.credentials.ensure_unique(username, email)
                role_id = SystemRole.ADMIN if is_initial_setup else SystemRole.USER
                user = self.credentials.add_user(
                    username,
                    email,
                    password_hash,
                    int(role_id),
                    user_settings=user_defaults,
                )
        except IntegrityError as e:
            raise ConflictError("Username or email already exists") from e

        if is_initial_setup:
            logger.info(
                "Initial admin account created; the first user has been granted administrator privileges",
                extra={"user_id": user.id, "username": username},
            )
        else:
            logger.info("User registered", extra={"user_id": user.id, "username": username})

        tokens = self.tokens.issue(user)
        permissions = self.get_permissions(user.id)
        return AuthResponse(user=self._auth_user(user, permissions), tokens=tokens)

    def refresh(self, refresh_token: str) -> AuthResponse:
        """Rotate the refresh token; the old one is dead from here on."""
        user, tokens = self.tokens.rotate(refresh_token)
        permissions = self.get_permissions(user.id)
        return AuthResponse(user=self._auth_user(user, permissions), tokens=tokens)

    def verify(self, access_token: str) -> AuthUser:
        """
        Authenticate a request. Account liveness is re-checked on every call;
        only the permission set is cached.
        """
        claims = self.tokens.verify_access(access_token)
        user = self.credentials.get_active_user(claims.subject_id)
        if user is None:
            raise AccountInactiveError()
        return self._auth_user(user, self.get_permissions(user.id))

    def guest_user(self) -> AuthUser:
        """Anonymous sentinel identity, available only while guest access is enabled."""
        if not self.settings_provider.get_auth_settings().guest_access_enabled:
            raise AuthenticationError("Authentication required", code="AUTH_REQUIRED")
        return AuthUser(
            id=0,
            username=GUEST_USERNAME,
            role=GUEST_USERNAME,
            permissions=sorted(GUEST_PERMISSIONS),
        )

    def logout(self, refresh_token: str) -> None:
        self.tokens.revoke(refresh_token)

    def logout_all(self, user_id: int) -> int:
        return self.tokens.revoke_all(user_id)

    def list_users(self) -> list[User]:
        return self.credentials.list_users()

    def get_user(self, user_id: int) -> User:
        user = self.credentials.get_user(user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    def create_user(
        self,
        username: str,
        email: str,
        password: str,
        role_id: int,
        is_active: bool = True,
    ) -> User:
        """Admin-created account; skips the registration policy and the first-user rule."""
        return self.credentials.create_user(username, email, password, role_id, is_active)

    def change_password(self, user_id: int, current_password: str, new_password: str) -> None:
        self.credentials.change_password(user_id, current_password, new_password)

    def reset_password(self, user_id: int, new_password: str) -> None:
        """Admin reset: every existing session of the user is revoked."""
        self.credentials.set_password(user_id, new_password)
        self.tokens.revoke_all(user_id)

    def update_user(
        self,
        user_id: int,
        role_id: int | None = None,
        is_active: bool | None = None,
    ) -> User:
        user = self.credentials.update_user(user_id, role_id=role_id, is_active=is_active)
        if role_id is not None:
            self.cache.invalidate_user(user_id)
        if is_active is False:
            self.tokens.revoke_all(user_id)
        return user

    def delete_user(self, user_id: int) -> None:
        self.credentials.delete_user(user_id)
        self.cache.invalidate_user(user_id)
