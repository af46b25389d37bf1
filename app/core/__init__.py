"""Settings, database sessions, and the hashing/token primitives used by auth."""

from app.core.config import Settings, get_settings, settings
from app.core.database import SessionLocal, get_db

__all__ = ["SessionLocal", "Settings", "get_db", "get_settings", "settings"]
