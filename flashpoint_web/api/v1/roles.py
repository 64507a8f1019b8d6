"""Role and permission management routes."""

from typing import Annotated

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from flashpoint_web.api.v1.auth import get_permission_cache, http_error, require_permission
from flashpoint_web.core.database import get_db
from flashpoint_web.core.exceptions import AuthServiceError
from flashpoint_web.schemas.auth import AuthUser, MessageResponse
from flashpoint_web.schemas.roles import (
    PermissionResponse,
    RoleCreateRequest,
    RolePermissionsUpdateRequest,
    RoleResponse,
    RoleUpdateRequest,
)
from flashpoint_web.services.permission_cache import PermissionCache
from flashpoint_web.services.roles import RoleManager

router = APIRouter()


def get_role_manager(
    db: Annotated[Session, Depends(get_db)],
    cache: Annotated[PermissionCache, Depends(get_permission_cache)],
) -> RoleManager:
    return RoleManager(db, cache)


@router.get("", response_model=list[RoleResponse])
def list_roles(
    _user: Annotated[AuthUser, Depends(require_permission("roles.read"))],
    manager: Annotated[RoleManager, Depends(get_role_manager)],
) -> list[RoleResponse]:
    """All roles with their permissions, highest priority first."""
    return [RoleResponse.model_validate(role) for role in manager.get_roles()]


@router.get("/permissions", response_model=list[PermissionResponse])
def list_permissions(
    _user: Annotated[AuthUser, Depends(require_permission("roles.read"))],
    manager: Annotated[RoleManager, Depends(get_role_manager)],
) -> list[PermissionResponse]:
    return [PermissionResponse.model_validate(p) for p in manager.get_permissions()]


@router.get("/{role_id}", response_model=RoleResponse)
def get_role(
    role_id: int,
    _user: Annotated[AuthUser, Depends(require_permission("roles.read"))],
    manager: Annotated[RoleManager, Depends(get_role_manager)],
) -> RoleResponse:
    try:
        return RoleResponse.model_validate(manager.get_role(role_id))
    except AuthServiceError as e:
        raise http_error(e) from e


@router.post("", response_model=RoleResponse, status_code=status.HTTP_201_CREATED)
def create_role(
    body: RoleCreateRequest,
    user: Annotated[AuthUser, Depends(require_permission("roles.create"))],
    manager: Annotated[RoleManager, Depends(get_role_manager)],
) -> RoleResponse:
    """Create a role. Only permissions the caller already holds can be granted."""
    try:
        role = manager.create_role(
            body.name,
            description=body.description,
            priority=body.priority,
            permission_ids=body.permission_ids,
            acting_permissions=set(user.permissions),
        )
    except AuthServiceError as e:
        raise http_error(e) from e
    return RoleResponse.model_validate(role)


@router.patch("/{role_id}", response_model=RoleResponse)
def update_role(
    role_id: int,
    body: RoleUpdateRequest,
    _user: Annotated[AuthUser, Depends(require_permission("roles.update"))],
    manager: Annotated[RoleManager, Depends(get_role_manager)],
) -> RoleResponse:
    """Update name, description or priority. System roles are read-only."""
    try:
        role = manager.update_role(
            role_id,
            name=body.name,
            description=body.description,
            priority=body.priority,
        )
    except AuthServiceError as e:
        raise http_error(e) from e
    return RoleResponse.model_validate(role)


@router.put("/{role_id}/permissions", response_model=RoleResponse)
def update_role_permissions(
    role_id: int,
    body: RolePermissionsUpdateRequest,
    user: Annotated[AuthUser, Depends(require_permission("roles.update"))],
    manager: Annotated[RoleManager, Depends(get_role_manager)],
) -> RoleResponse:
    """Replace the role's whole permission set."""
    try:
        role = manager.update_role_permissions(
            role_id,
            body.permission_ids,
            acting_permissions=set(user.permissions),
        )
    except AuthServiceError as e:
        raise http_error(e) from e
    return RoleResponse.model_validate(role)


@router.delete("/{role_id}", response_model=MessageResponse)
def delete_role(
    role_id: int,
    _user: Annotated[AuthUser, Depends(require_permission("roles.delete"))],
    manager: Annotated[RoleManager, Depends(get_role_manager)],
) -> MessageResponse:
    try:
        manager.delete_role(role_id)
    except AuthServiceError as e:
        raise http_error(e) from e
    return MessageResponse(message="Role deleted successfully")
