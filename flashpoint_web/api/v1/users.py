"""User account administration and self-service password change."""

from typing import Annotated

from fastapi import APIRouter, Depends, status

from flashpoint_web.api.v1.auth import (
    get_auth_service,
    get_current_user,
    http_error,
    require_permission,
)
from flashpoint_web.core.exceptions import AuthServiceError
from flashpoint_web.schemas.auth import (
    AuthUser,
    ChangePasswordRequest,
    MessageResponse,
    ResetPasswordRequest,
    UserCreateRequest,
    UserResponse,
    UserUpdateRequest,
)
from flashpoint_web.services.auth import AuthOrchestrator

router = APIRouter()


@router.get("", response_model=list[UserResponse])
def list_users(
    _user: Annotated[AuthUser, Depends(require_permission("users.read"))],
    service: Annotated[AuthOrchestrator, Depends(get_auth_service)],
) -> list[UserResponse]:
    return [UserResponse.model_validate(u) for u in service.list_users()]


@router.post("/me/password", response_model=MessageResponse)
def change_own_password(
    body: ChangePasswordRequest,
    current_user: Annotated[AuthUser, Depends(get_current_user)],
    service: Annotated[AuthOrchestrator, Depends(get_auth_service)],
) -> MessageResponse:
    """Change the caller's password; the current password must be supplied."""
    try:
        service.change_password(current_user.id, body.current_password, body.new_password)
    except AuthServiceError as e:
        raise http_error(e) from e
    return MessageResponse(message="Password changed successfully")


@router.get("/{user_id}", response_model=UserResponse)
def get_user(
    user_id: int,
    _user: Annotated[AuthUser, Depends(require_permission("users.read"))],
    service: Annotated[AuthOrchestrator, Depends(get_auth_service)],
) -> UserResponse:
    try:
        return UserResponse.model_validate(service.get_user(user_id))
    except AuthServiceError as e:
        raise http_error(e) from e


@router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
def create_user(
    body: UserCreateRequest,
    _user: Annotated[AuthUser, Depends(require_permission("users.create"))],
    service: Annotated[AuthOrchestrator, Depends(get_auth_service)],
) -> UserResponse:
    try:
        user = service.create_user(
            body.username,
            body.email,
            body.password,
            body.role_id,
            is_active=body.is_active,
        )
    except AuthServiceError as e:
        raise http_error(e) from e
    return UserResponse.model_validate(user)


@router.patch("/{user_id}", response_model=UserResponse)
def update_user(
    user_id: int,
    body: UserUpdateRequest,
    _user: Annotated[AuthUser, Depends(require_permission("users.update"))],
    service: Annotated[AuthOrchestrator, Depends(get_auth_service)],
) -> UserResponse:
    """Change role and/or active flag. Deactivation ends all of the user's sessions."""
    try:
        user = service.update_user(user_id, role_id=body.role_id, is_active=body.is_active)
    except AuthServiceError as e:
        raise http_error(e) from e
    return UserResponse.model_validate(user)


@router.post("/{user_id}/password", response_model=MessageResponse)
def reset_password(
    user_id: int,
    body: ResetPasswordRequest,
    _user: Annotated[AuthUser, Depends(require_permission("users.update"))],
    service: Annotated[AuthOrchestrator, Depends(get_auth_service)],
) -> MessageResponse:
    """Admin reset without the current password; revokes every refresh token of the user."""
    try:
        service.reset_password(user_id, body.new_password)
    except AuthServiceError as e:
        raise http_error(e) from e
    return MessageResponse(message="Password reset successfully")


@router.delete("/{user_id}", response_model=MessageResponse)
def delete_user(
    user_id: int,
    _user: Annotated[AuthUser, Depends(require_permission("users.delete"))],
    service: Annotated[AuthOrchestrator, Depends(get_auth_service)],
) -> MessageResponse:
    try:
        service.delete_user(user_id)
    except AuthServiceError as e:
        raise http_error(e) from e
    return MessageResponse(message="User deleted successfully")
