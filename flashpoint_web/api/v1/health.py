"""Health check endpoint with database connectivity and permission cache sizes."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from flashpoint_web.api.v1.auth import get_permission_cache
from flashpoint_web.core.config import settings
from flashpoint_web.core.database import check_db_connected, get_db
from flashpoint_web.schemas.health import HealthResponse, PermissionCacheStats
from flashpoint_web.services.permission_cache import PermissionCache

router = APIRouter()


@router.get("/", response_model=HealthResponse)
def get_health(
    db: Session = Depends(get_db),
    cache: PermissionCache = Depends(get_permission_cache),
) -> HealthResponse:
    """
    Return service health status, database connectivity and permission cache sizes.
    Used by load balancers and monitoring.
    """
    db_status = "connected" if check_db_connected(db) else "disconnected"

    return HealthResponse(
        status="ok",
        environment=settings.APP_ENV,
        database=db_status,
        permission_cache=PermissionCacheStats(**cache.get_stats()),
    )
