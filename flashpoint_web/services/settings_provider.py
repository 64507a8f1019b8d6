"""Auth settings collaborator: where guest access, registration and lockout policy come from."""

from typing import Protocol

from flashpoint_web.core.config import Settings
from flashpoint_web.schemas.auth import AuthSettings


class SettingsProvider(Protocol):
    """Read side of the system-settings store used by the auth core."""

    def get_auth_settings(self) -> AuthSettings: ...

    def get_user_defaults(self) -> dict[str, str]: ...


class EnvSettingsProvider:
    """SettingsProvider backed by static configuration (AUTH_* and DEFAULT_* env vars)."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    def get_auth_settings(self) -> AuthSettings:
        return AuthSettings(
            guest_access_enabled=self._settings.AUTH_GUEST_ACCESS_ENABLED,
            user_registration_enabled=self._settings.AUTH_USER_REGISTRATION_ENABLED,
            max_login_attempts=self._settings.AUTH_MAX_LOGIN_ATTEMPTS,
            lockout_duration_minutes=self._settings.AUTH_LOCKOUT_DURATION_MINUTES,
        )

    def get_user_defaults(self) -> dict[str, str]:
        """Per-user settings seeded at registration."""
        return {
            "theme_mode": self._settings.DEFAULT_THEME,
            "primary_color": self._settings.DEFAULT_PRIMARY_COLOR,
        }
