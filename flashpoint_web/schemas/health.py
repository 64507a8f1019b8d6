"""Pydantic schemas for health check responses."""

from typing import Literal

from pydantic import BaseModel, Field


class PermissionCacheStats(BaseModel):
    """Entry counts of the in-process permission cache."""

    user_cache_size: int
    role_cache_size: int
    total_size: int


class HealthResponse(BaseModel):
    """Response body for the health check endpoint."""

    status: Literal["ok"] = Field(default="ok", description="Service status")
    environment: str = Field(description="Current app environment (e.g. dev, prod)")
    database: Literal["connected", "disconnected"] | None = Field(
        default=None,
        description="Database connectivity status when check is performed",
    )
    permission_cache: PermissionCacheStats | None = Field(
        default=None,
        description="Permission cache sizes (not hit rates)",
    )
