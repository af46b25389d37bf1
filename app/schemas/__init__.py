"""Pydantic request/response schemas."""

from app.schemas.auth import (
    AuthErrorCode,
    AuthFailure,
    CurrentUser,
    LoginResult,
    PasswordVerification,
    PrecheckResult,
    ThrottleStatus,
    TokenPair,
    TokenVerification,
)
from app.schemas.health import HealthResponse

__all__ = [
    "AuthErrorCode",
    "AuthFailure",
    "CurrentUser",
    "HealthResponse",
    "LoginResult",
    "PasswordVerification",
    "PrecheckResult",
    "ThrottleStatus",
    "TokenPair",
    "TokenVerification",
]
