"""Request/response schemas for auth endpoints and the auth service layer."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class LoginRequest(BaseModel):
    """Credentials for login."""

    username: str = Field(..., min_length=3, max_length=50, description="Username")
    password: str = Field(..., min_length=6, max_length=128, description="Password")


class RegisterRequest(BaseModel):
    """New account; the very first registration becomes the administrator."""

    username: str = Field(..., min_length=3, max_length=50, description="Username")
    email: str = Field(
        ...,
        max_length=255,
        pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$",
        description="Email address",
    )
    password: str = Field(..., min_length=6, max_length=128, description="Password")


class RefreshRequest(BaseModel):
    """Body for refresh and logout: the opaque refresh token."""

    refresh_token: str = Field(..., min_length=1, max_length=256)


class TokenPair(BaseModel):
    """Access/refresh token pair returned after login, registration or refresh."""

    access_token: str = Field(..., description="JWT access token")
    refresh_token: str = Field(..., description="Opaque refresh token (single use)")
    expires_in: int = Field(..., description="Access token lifetime in seconds")
    token_type: str = Field(default="bearer", description="Token type")


class AccessClaims(BaseModel):
    """Verified claims of an access token. No permissions are embedded."""

    subject_id: int
    username: str
    role_name: str
    issued_at: datetime
    expires_at: datetime


class AuthUser(BaseModel):
    """Authenticated identity with permissions resolved at request time."""

    id: int
    username: str
    email: str = ""
    role: str
    permissions: list[str] = Field(default_factory=list)

    def has_permission(self, *names: str) -> bool:
        """True if the user holds at least one of the given permissions."""
        held = set(self.permissions)
        return any(name in held for name in names)


class AuthResponse(BaseModel):
    """User plus token pair."""

    user: AuthUser
    tokens: TokenPair


class AuthSettings(BaseModel):
    """Auth policy served by the settings collaborator."""

    guest_access_enabled: bool = True
    user_registration_enabled: bool = True
    max_login_attempts: int = Field(default=5, ge=1)
    lockout_duration_minutes: int = Field(default=15, ge=1, le=1440)


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(..., min_length=1, max_length=128)
    new_password: str = Field(..., min_length=6, max_length=128)


class ResetPasswordRequest(BaseModel):
    new_password: str = Field(..., min_length=6, max_length=128)


class UserUpdateRequest(BaseModel):
    """Admin update of a user's role and/or active flag."""

    role_id: int | None = Field(default=None, gt=0)
    is_active: bool | None = None


class UserResponse(BaseModel):
    """User entry for admin views (no password hash)."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    email: str
    role_id: int
    role_name: str
    is_active: bool
    last_login_at: datetime | None = None


class MessageResponse(BaseModel):
    success: bool = True
    message: str


class UserCreateRequest(BaseModel):
    """Admin-created account with an explicit role."""

    username: str = Field(..., min_length=3, max_length=50)
    email: str = Field(..., max_length=255, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    password: str = Field(..., min_length=6, max_length=128)
    role_id: int = Field(..., gt=0)
    is_active: bool = True
