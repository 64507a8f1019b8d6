"""FastAPI application entrypoint. No business logic; only wiring and middleware."""

from dotenv import load_dotenv

load_dotenv()

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from flashpoint_web.api.v1 import router as v1_router
from flashpoint_web.core.config import settings
from flashpoint_web.services.permission_cache import PermissionCache
from flashpoint_web.services.settings_provider import EnvSettingsProvider


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Own the process-wide permission cache and its sweeper for the app's lifetime."""
    cache = PermissionCache(
        user_ttl=settings.USER_PERMISSION_CACHE_TTL_SEC,
        role_ttl=settings.ROLE_PERMISSION_CACHE_TTL_SEC,
        sweep_interval=settings.PERMISSION_CACHE_SWEEP_INTERVAL_SEC,
    )
    app.state.permission_cache = cache
    app.state.settings_provider = EnvSettingsProvider(settings)
    cache.start()
    try:
        yield
    finally:
        cache.stop()


app = FastAPI(
    title="Flashpoint Web API",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.APP_ENV == "dev" else [],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(v1_router, prefix=settings.API_V1_PREFIX)


@app.get("/")
def root() -> dict[str, str]:
    """Root route; minimal payload for discovery."""
    return {"message": "Flashpoint Web API"}
