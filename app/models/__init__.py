"""SQLAlchemy ORM models."""

from app.models.base import Base
from app.models.login_attempt import LoginAttempt
from app.models.refresh_token import RefreshToken
from app.models.user import User

__all__ = ["Base", "LoginAttempt", "RefreshToken", "User"]
