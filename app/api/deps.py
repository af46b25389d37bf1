"""FastAPI dependencies: auth service wiring, action policy, current user, role checks."""

import ipaddress
from collections.abc import Callable
from typing import Annotated

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from app.api.errors import raise_for_failure
from app.core.config import Settings, get_settings
from app.core.database import get_db
from app.schemas.auth import CurrentUser, GateDecision
from app.services.auth import AuthService
from app.services.auth_gate import require_auth, require_role

security = HTTPBearer(auto_error=False)


def get_auth_service(
    db: Annotated[Session, Depends(get_db)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> AuthService:
    return AuthService(db, settings)


def bearer_token(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
) -> str | None:
    return credentials.credentials if credentials is not None else None


def _valid_ip(value: str | None) -> str | None:
    if not value:
        return None
    try:
        return str(ipaddress.ip_address(value.strip()))
    except ValueError:
        return None


def client_origin(request: Request) -> str:
    """Client IP used to key the login throttle.

    Proxy headers are tried first (CF-Connecting-IP, then the first
    X-Forwarded-For entry); values that do not parse as an IP address are
    skipped, then the socket peer, then "unknown".
    """
    forwarded_for = request.headers.get("X-Forwarded-For") or ""
    candidates = (
        request.headers.get("CF-Connecting-IP"),
        forwarded_for.split(",")[0],
    )
    for candidate in candidates:
        ip = _valid_ip(candidate)
        if ip is not None:
            return ip
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def request_action(request: Request) -> str:
    """Action name: the matched endpoint's function name. Client input never selects it."""
    endpoint = request.scope.get("endpoint")
    return getattr(endpoint, "__name__", "") if endpoint is not None else ""


def enforce_action_policy(
    request: Request,
    token: Annotated[str | None, Depends(bearer_token)],
    auth: Annotated[AuthService, Depends(get_auth_service)],
) -> GateDecision:
    """Router-level gate: public, shared-token or JWT-required per action."""
    decision = auth.gate.authorize(
        request.method,
        request_action(request),
        bearer_token=token,
        provided_token=request.query_params.get("token"),
    )
    if not decision.allowed:
        raise_for_failure(decision.failure)
    return decision


def get_optional_user(
    token: Annotated[str | None, Depends(bearer_token)],
    auth: Annotated[AuthService, Depends(get_auth_service)],
) -> CurrentUser | None:
    """Lenient auth dependency; returns the user when the token is valid, else None."""
    return auth.authenticate(token)


def get_current_user(
    user: Annotated[CurrentUser | None, Depends(get_optional_user)],
) -> CurrentUser:
    """Dependency: require valid Bearer access token and an active user. Raises 401 otherwise."""
    failure = require_auth(user)
    if failure is not None:
        raise_for_failure(failure)
    return user


def require_roles(*roles: str) -> Callable[[CurrentUser], CurrentUser]:
    """Dependency factory: require one of roles (admin always passes). Raises 403 otherwise."""

    def dependency(
        current_user: Annotated[CurrentUser, Depends(get_current_user)],
    ) -> CurrentUser:
        failure = require_role(current_user, roles)
        if failure is not None:
            raise_for_failure(failure)
        return current_user

    return dependency
