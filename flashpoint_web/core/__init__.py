"""Core app configuration and database."""

from flashpoint_web.core.config import get_settings, settings
from flashpoint_web.core.database import atomic, get_db

__all__ = ["get_settings", "settings", "atomic", "get_db"]
