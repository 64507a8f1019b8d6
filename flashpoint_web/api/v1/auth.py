"""Auth routes (login, register, refresh, logout, me, session) and the auth dependencies
used by every other router (get_current_user, require_permission)."""

from collections.abc import Callable
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from flashpoint_web.core.config import Settings, get_settings
from flashpoint_web.core.database import get_db
from flashpoint_web.core.exceptions import AuthServiceError
from flashpoint_web.schemas.auth import (
    AuthResponse,
    AuthUser,
    LoginRequest,
    MessageResponse,
    RefreshRequest,
    RegisterRequest,
)
from flashpoint_web.services.auth import AuthOrchestrator
from flashpoint_web.services.permission_cache import PermissionCache
from flashpoint_web.services.settings_provider import SettingsProvider

router = APIRouter()
security = HTTPBearer(auto_error=False)


def http_error(e: AuthServiceError) -> HTTPException:
    """Map a typed service failure to the HTTP error returned to the client."""
    headers = {"WWW-Authenticate": "Bearer"} if e.status_code == status.HTTP_401_UNAUTHORIZED else None
    return HTTPException(status_code=e.status_code, detail=e.message, headers=headers)


def get_permission_cache(request: Request) -> PermissionCache:
    """The process-wide cache created by the application lifespan."""
    return request.app.state.permission_cache


def get_settings_provider(request: Request) -> SettingsProvider:
    return request.app.state.settings_provider


def get_auth_service(
    db: Annotated[Session, Depends(get_db)],
    settings: Annotated[Settings, Depends(get_settings)],
    settings_provider: Annotated[SettingsProvider, Depends(get_settings_provider)],
    cache: Annotated[PermissionCache, Depends(get_permission_cache)],
) -> AuthOrchestrator:
    return AuthOrchestrator(db, settings, settings_provider, cache)


def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    service: Annotated[AuthOrchestrator, Depends(get_auth_service)],
) -> AuthUser:
    """Dependency: require a valid Bearer access token for an active account. Raises 401 otherwise."""
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        return service.verify(credentials.credentials)
    except AuthServiceError as e:
        raise http_error(e) from e


def get_current_user_or_guest(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    service: Annotated[AuthOrchestrator, Depends(get_auth_service)],
) -> AuthUser:
    """
    Like get_current_user, but an anonymous request gets the guest identity
    while guest access is enabled. A bad token is still a 401.
    """
    try:
        if credentials is None:
            return service.guest_user()
        return service.verify(credentials.credentials)
    except AuthServiceError as e:
        raise http_error(e) from e


def require_permission(*permissions: str) -> Callable[..., AuthUser]:
    """
    Dependency factory: the current user must hold at least one of `permissions`.

    Usage: `user: Annotated[AuthUser, Depends(require_permission("roles.read"))]`
    """

    def dependency(current_user: Annotated[AuthUser, Depends(get_current_user)]) -> AuthUser:
        if not current_user.has_permission(*permissions):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return current_user

    return dependency


def _client_ip(request: Request) -> str:
    return request.client.host if request.client else ""


@router.post("/login", response_model=AuthResponse)
def login(
    body: LoginRequest,
    request: Request,
    service: Annotated[AuthOrchestrator, Depends(get_auth_service)],
) -> AuthResponse:
    """
    Authenticate with username and password; returns the user and a token pair.
    Send the access token as: Authorization: Bearer <access_token>
    """
    try:
        return service.login(body.username, body.password, _client_ip(request))
    except AuthServiceError as e:
        raise http_error(e) from e


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
def register(
    body: RegisterRequest,
    service: Annotated[AuthOrchestrator, Depends(get_auth_service)],
) -> AuthResponse:
    """Create an account. The first account on a fresh install becomes the administrator."""
    try:
        return service.register(body.username, body.email, body.password)
    except AuthServiceError as e:
        raise http_error(e) from e


@router.post("/refresh", response_model=AuthResponse)
def refresh(
    body: RefreshRequest,
    service: Annotated[AuthOrchestrator, Depends(get_auth_service)],
) -> AuthResponse:
    """Exchange a refresh token for a new pair. Each refresh token works once."""
    try:
        return service.refresh(body.refresh_token)
    except AuthServiceError as e:
        raise http_error(e) from e


@router.post("/logout", response_model=MessageResponse)
def logout(
    body: RefreshRequest,
    service: Annotated[AuthOrchestrator, Depends(get_auth_service)],
) -> MessageResponse:
    """Revoke the given refresh token. Unknown or already revoked tokens also succeed."""
    service.logout(body.refresh_token)
    return MessageResponse(message="Logged out successfully")


@router.get("/me", response_model=AuthUser)
def me(current_user: Annotated[AuthUser, Depends(get_current_user)]) -> AuthUser:
    return current_user


@router.get("/session", response_model=AuthUser)
def current_session(
    current_user: Annotated[AuthUser, Depends(get_current_user_or_guest)],
) -> AuthUser:
    """The caller's identity; anonymous callers get the guest identity while guest access is on."""
    return current_user


@router.post("/logout-all", response_model=MessageResponse)
def logout_all(
    current_user: Annotated[AuthUser, Depends(get_current_user)],
    service: Annotated[AuthOrchestrator, Depends(get_auth_service)],
) -> MessageResponse:
    """Revoke every refresh token of the caller (log out on all devices)."""
    revoked = service.logout_all(current_user.id)
    return MessageResponse(message=f"Revoked {revoked} sessions")
