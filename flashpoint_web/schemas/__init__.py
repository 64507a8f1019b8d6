"""Pydantic request/response schemas."""

from flashpoint_web.schemas.auth import (
    AccessClaims,
    AuthResponse,
    AuthSettings,
    AuthUser,
    ChangePasswordRequest,
    LoginRequest,
    MessageResponse,
    RefreshRequest,
    RegisterRequest,
    ResetPasswordRequest,
    TokenPair,
    UserCreateRequest,
    UserResponse,
    UserUpdateRequest,
)
from flashpoint_web.schemas.health import HealthResponse, PermissionCacheStats
from flashpoint_web.schemas.roles import (
    PermissionResponse,
    RoleCreateRequest,
    RolePermissionsUpdateRequest,
    RoleResponse,
    RoleUpdateRequest,
)

__all__ = [
    "AccessClaims",
    "AuthResponse",
    "AuthSettings",
    "AuthUser",
    "ChangePasswordRequest",
    "HealthResponse",
    "LoginRequest",
    "MessageResponse",
    "PermissionCacheStats",
    "PermissionResponse",
    "RefreshRequest",
    "RegisterRequest",
    "ResetPasswordRequest",
    "RoleCreateRequest",
    "RolePermissionsUpdateRequest",
    "RoleResponse",
    "RoleUpdateRequest",
    "TokenPair",
    "UserCreateRequest",
    "UserResponse",
    "UserUpdateRequest",
]
