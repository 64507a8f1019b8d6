"""Typed failures raised by the auth, session and role services.

Each carries the HTTP status the API layer maps it to. Messages are safe to
return to clients: they never contain passwords or token values.
"""


class AuthServiceError(Exception):
    """Base class for expected, typed failures of the auth core."""

    status_code = 400

    def __init__(self, message: str, code: str | None = None) -> None:
        self.message = message
        self.code = code
        super().__init__(message)


class AuthenticationError(AuthServiceError):
    status_code = 401


class InvalidCredentialsError(AuthenticationError):
    """Unknown username or wrong password; deliberately indistinguishable."""

    def __init__(self, message: str = "Invalid username or password") -> None:
        super().__init__(message, code="INVALID_CREDENTIALS")


class TokenInvalidError(AuthenticationError):
    """Access or refresh token is malformed, expired, unknown or revoked."""

    def __init__(self, message: str = "Invalid or expired token", code: str = "TOKEN_INVALID") -> None:
        super().__init__(message, code=code)


class TokenRevokedError(TokenInvalidError):
    """Refresh token was already used or logged out."""

    def __init__(self, message: str = "Invalid or expired refresh token") -> None:
        super().__init__(message, code="TOKEN_REVOKED")


class AccountInactiveError(TokenInvalidError):
    """Token is well-formed but its account is deactivated or gone."""

    def __init__(self, message: str = "User not found or inactive") -> None:
        super().__init__(message, code="ACCOUNT_INACTIVE")


class LockedOutError(AuthServiceError):
    status_code = 429

    def __init__(self, lockout_minutes: int) -> None:
        self.lockout_minutes = lockout_minutes
        super().__init__(
            f"Too many login attempts. Please try again in {lockout_minutes} minutes.",
            code="LOCKED_OUT",
        )


class PermissionDeniedError(AuthServiceError):
    status_code = 403


class RegistrationDisabledError(PermissionDeniedError):
    def __init__(self) -> None:
        super().__init__("User registration is currently disabled", code="REGISTRATION_DISABLED")


class NotFoundError(AuthServiceError):
    status_code = 404


class ConflictError(AuthServiceError):
    status_code = 409
