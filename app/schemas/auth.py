"""Typed results and request/response schemas for the auth subsystem.

Every auth failure is an ``AuthFailure`` value carrying one ``AuthErrorCode``;
nothing in the subsystem raises across the auth/HTTP boundary.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

UserRole = Literal["athlete", "coach", "committee", "admin"]

USER_ROLES: frozenset[str] = frozenset({"athlete", "coach", "committee", "admin"})

TokenType = Literal["access", "refresh"]

AccessLevel = Literal["auth", "public", "shared_token", "jwt_required"]


class AuthErrorCode(str, Enum):
    """Machine-readable failure codes; the HTTP layer maps each to one status."""

    MISSING_PARAM = "missing_param"
    INVALID_PARAM = "invalid_param"
    INVALID_TOKEN = "invalid_token"
    TOKEN_EXPIRED = "token_expired"
    INVALID_SIGNATURE = "invalid_signature"
    INVALID_CREDENTIALS = "invalid_credentials"
    ACCOUNT_NOT_FOUND = "account_not_found"
    RATE_LIMITED = "rate_limited"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    CONFIG_ERROR = "config_error"


DEFAULT_MESSAGES: dict[AuthErrorCode, str] = {
    AuthErrorCode.MISSING_PARAM: "Missing parameter",
    AuthErrorCode.INVALID_PARAM: "Invalid parameter",
    AuthErrorCode.INVALID_TOKEN: "Invalid token",
    AuthErrorCode.TOKEN_EXPIRED: "Token expired",
    AuthErrorCode.INVALID_SIGNATURE: "Invalid token",
    AuthErrorCode.INVALID_CREDENTIALS: "Invalid credentials",
    AuthErrorCode.ACCOUNT_NOT_FOUND: "Account not found",
    AuthErrorCode.RATE_LIMITED: "Too many attempts. Try again later.",
    AuthErrorCode.UNAUTHORIZED: "Unauthorized",
    AuthErrorCode.FORBIDDEN: "Forbidden",
    AuthErrorCode.CONFIG_ERROR: "Authentication is not configured",
}


class AuthFailure(BaseModel):
    """Structured rejection returned by every auth operation."""

    model_config = ConfigDict(frozen=True)

    code: AuthErrorCode
    message: str

    @classmethod
    def of(cls, code: AuthErrorCode, message: str | None = None) -> "AuthFailure":
        return cls(code=code, message=message or DEFAULT_MESSAGES[code])


class PasswordVerification(BaseModel):
    """Outcome of checking a password against a stored hash."""

    valid: bool
    needs_upgrade: bool = False
    new_hash: str | None = Field(
        default=None,
        description="Replacement hash to persist when needs_upgrade is True.",
    )


class TokenVerification(BaseModel):
    """Outcome of verifying a signed token: payload on success, error code otherwise."""

    valid: bool
    payload: dict[str, Any] | None = None
    error: AuthErrorCode | None = None


class ThrottleStatus(BaseModel):
    """Current state of one (identifier, origin) login counter."""

    attempt_count: int = 0
    locked_until: datetime | None = None

    @property
    def locked(self) -> bool:
        return self.locked_until is not None


class IssuedRefreshToken(BaseModel):
    """A freshly minted refresh token and its raw id (the id is never persisted)."""

    jti: str
    refresh_token: str
    expires_at: datetime


class TokenPair(BaseModel):
    access_token: str
    refresh_token: str


class CurrentUser(BaseModel):
    """Authenticated user (id, display name, email, role) for dependency injection."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    display_name: str
    email: str | None = None
    role: UserRole
    is_active: bool = True


class LoginResult(TokenPair):
    user: CurrentUser


class PrecheckResult(BaseModel):
    account_exists: bool
    requires_password: bool


class GateDecision(BaseModel):
    """Result of running the per-request access policy."""

    access_level: AccessLevel
    user: CurrentUser | None = None
    failure: AuthFailure | None = None

    @property
    def allowed(self) -> bool:
        return self.failure is None


# --- HTTP request bodies -----------------------------------------------------
# Fields are optional so missing values surface as missing_param rather than 422.


class LoginRequest(BaseModel):
    """Credentials for login."""

    identifier: str | None = Field(default=None, max_length=255, description="Email or display name")
    password: str | None = Field(default=None, max_length=1024, description="Password")


class PrecheckRequest(BaseModel):
    identifier: str | None = Field(default=None, max_length=255)


class RefreshRequest(BaseModel):
    refresh_token: str | None = None


class PasswordUpdateRequest(BaseModel):
    """New password for the caller, or for ``user_id`` when the caller is an admin."""

    password: str | None = Field(default=None, max_length=1024)
    user_id: int | str | None = None


# --- HTTP responses -----------------------------------------------------------


class LoginResponse(BaseModel):
    ok: Literal[True] = True
    data: LoginResult


class TokenPairResponse(BaseModel):
    ok: Literal[True] = True
    data: TokenPair


class PrecheckResponse(BaseModel):
    ok: Literal[True] = True
    data: PrecheckResult


class StatusData(BaseModel):
    status: str


class StatusResponse(BaseModel):
    ok: Literal[True] = True
    data: StatusData


class CurrentUserData(BaseModel):
    user: CurrentUser


class CurrentUserResponse(BaseModel):
    ok: Literal[True] = True
    data: CurrentUserData


class UsersListData(BaseModel):
    users: list[CurrentUser]


class UsersListResponse(BaseModel):
    """Response for GET /auth/users (admin only)."""

    ok: Literal[True] = True
    data: UsersListData


class ErrorResponse(BaseModel):
    ok: Literal[False] = False
    error: str
    code: AuthErrorCode
