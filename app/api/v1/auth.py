"""Auth endpoints: login, precheck, refresh, logout, password update, current user.

Endpoint function names double as action names for the router-level access policy,
so every handler here is named auth_* (self-authenticating) or users_* (JWT required).
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Request

from app.api.deps import (
    bearer_token,
    client_origin,
    get_auth_service,
    get_current_user,
    get_optional_user,
    require_roles,
)
from app.api.errors import raise_for_failure
from app.schemas.auth import (
    AuthFailure,
    CurrentUser,
    CurrentUserData,
    CurrentUserResponse,
    LoginRequest,
    LoginResponse,
    PasswordUpdateRequest,
    PrecheckRequest,
    PrecheckResponse,
    RefreshRequest,
    StatusData,
    StatusResponse,
    TokenPairResponse,
    UsersListData,
    UsersListResponse,
)
from app.services.auth import AuthService

router = APIRouter()


@router.post("/login", response_model=LoginResponse)
def auth_login(
    body: LoginRequest,
    request: Request,
    auth: Annotated[AuthService, Depends(get_auth_service)],
) -> LoginResponse:
    """
    Authenticate with identifier (email or display name) and password.
    Returns the user plus an access token (Authorization: Bearer <access_token>)
    and a refresh token for POST /auth/refresh.
    """
    result = auth.login(body.identifier, body.password, client_origin(request))
    if isinstance(result, AuthFailure):
        raise_for_failure(result)
    return LoginResponse(data=result)


@router.post("/login/precheck", response_model=PrecheckResponse)
def auth_login_precheck(
    body: PrecheckRequest,
    request: Request,
    auth: Annotated[AuthService, Depends(get_auth_service)],
) -> PrecheckResponse:
    """Report whether an account exists for the identifier and whether it needs a password."""
    result = auth.precheck(body.identifier, client_origin(request))
    if isinstance(result, AuthFailure):
        raise_for_failure(result)
    return PrecheckResponse(data=result)


@router.post("/refresh", response_model=TokenPairResponse)
def auth_refresh(
    auth: Annotated[AuthService, Depends(get_auth_service)],
    token: Annotated[str | None, Depends(bearer_token)],
    body: RefreshRequest | None = None,
) -> TokenPairResponse:
    """Rotate a refresh token (body or Bearer) into a new access/refresh pair."""
    refresh_token = (body.refresh_token if body else None) or token
    result = auth.refresh(refresh_token)
    if isinstance(result, AuthFailure):
        raise_for_failure(result)
    return TokenPairResponse(data=result)


@router.post("/logout", response_model=StatusResponse)
def auth_logout(
    auth: Annotated[AuthService, Depends(get_auth_service)],
    token: Annotated[str | None, Depends(bearer_token)],
    body: RefreshRequest | None = None,
) -> StatusResponse:
    """Revoke the given refresh token. Always succeeds."""
    auth.logout((body.refresh_token if body else None) or token)
    return StatusResponse(data=StatusData(status="ok"))


@router.post("/password", response_model=StatusResponse)
def auth_password_update(
    body: PasswordUpdateRequest,
    auth: Annotated[AuthService, Depends(get_auth_service)],
    user: Annotated[CurrentUser | None, Depends(get_optional_user)],
) -> StatusResponse:
    """Set a new password for the caller, or for user_id when the caller is an admin."""
    failure = auth.update_password(user, body.password, body.user_id)
    if failure is not None:
        raise_for_failure(failure)
    return StatusResponse(data=StatusData(status="updated"))


@router.get("/me", response_model=CurrentUserResponse)
def auth_me(
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
) -> CurrentUserResponse:
    """Return the authenticated caller."""
    return CurrentUserResponse(data=CurrentUserData(user=current_user))


@router.get("/users", response_model=UsersListResponse)
def users_list(
    _admin: Annotated[CurrentUser, Depends(require_roles("admin"))],
    auth: Annotated[AuthService, Depends(get_auth_service)],
) -> UsersListResponse:
    """List all users (admin only). Demonstrates RBAC."""
    return UsersListResponse(
        data=UsersListData(
            users=[CurrentUser.model_validate(u) for u in auth.users.list_all()]
        )
    )
