"""Request/response schemas for role and permission management."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, PositiveInt


class PermissionResponse(BaseModel):
    """Catalog permission."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: str | None = None
    resource: str
    action: str


class RoleResponse(BaseModel):
    """Role with its permissions."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: str | None = None
    priority: int
    permissions: list[PermissionResponse] = Field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None


class RoleCreateRequest(BaseModel):
    name: str = Field(..., min_length=3, max_length=50)
    description: str | None = Field(default=None, max_length=1000)
    priority: int = 0
    permission_ids: list[PositiveInt] = Field(default_factory=list)


class RoleUpdateRequest(BaseModel):
    """Partial update of role metadata; permissions go through PUT /permissions."""

    name: str | None = Field(default=None, min_length=3, max_length=50)
    description: str | None = Field(default=None, max_length=1000)
    priority: int | None = None


class RolePermissionsUpdateRequest(BaseModel):
    """Replaces the role's whole permission set."""

    permission_ids: list[PositiveInt]
