"""Per-request access policy: who is calling, and may they run this action.

Actions fall into four levels:
  auth          auth_* actions; they authenticate on their own terms
  public        read-only GETs open to anyone
  jwt_required  needs a valid user access token
  shared_token  accepts the static service token or a user token
"""

import logging
from collections.abc import Iterable

from pydantic import ValidationError
from sqlalchemy.orm import Session

from app.core.crypto import constant_time_equals
from app.core.tokens import TokenService, subject_user_id
from app.models import User
from app.schemas.auth import (
    AccessLevel,
    AuthErrorCode,
    AuthFailure,
    CurrentUser,
    GateDecision,
)

logger = logging.getLogger(__name__)

AUTH_ACTION_PREFIX = "auth_"
PUBLIC_READ_ONLY_ACTIONS = frozenset(
    {"get", "hall", "strength_hall", "exercises", "dim_seance", "dim_seance_deroule", "health"}
)
JWT_REQUIRED_PREFIXES = (
    "assignments_",
    "users_",
    "notifications_",
    "swim_catalog_",
    "strength_catalog_",
    "timesheet_",
)


def classify_action(method: str, action: str | None) -> AccessLevel:
    """Map an HTTP method and action name to its access level."""
    action = action or ""
    if action.startswith(AUTH_ACTION_PREFIX):
        return "auth"
    if action and any(action.startswith(prefix) for prefix in JWT_REQUIRED_PREFIXES):
        return "jwt_required"
    if method.upper() == "GET" and (not action or action in PUBLIC_READ_ONLY_ACTIONS):
        return "public"
    return "shared_token"


def require_auth(user: CurrentUser | None) -> AuthFailure | None:
    """Reject unless there is an active authenticated user."""
    if user is None or not user.is_active:
        return AuthFailure.of(AuthErrorCode.UNAUTHORIZED)
    return None


def require_role(user: CurrentUser | None, roles: Iterable[str]) -> AuthFailure | None:
    """Reject unless the user holds one of roles. Admins pass every role check."""
    if user is not None and user.role == "admin":
        return None
    if user is None or user.role not in set(roles):
        return AuthFailure.of(AuthErrorCode.FORBIDDEN)
    return None


class AuthGate:
    """Authenticates bearer tokens and applies the action policy."""

    def __init__(
        self,
        session: Session,
        tokens: TokenService,
        shared_token: str | None = None,
    ) -> None:
        self.session = session
        self.tokens = tokens
        self.shared_token = shared_token or None

    def authenticate(self, bearer_token: str | None) -> CurrentUser | None:
        """
        Resolve an access token to an active user.

        Any failure (no secret, bad token, wrong type, unknown or inactive user)
        yields None rather than an error.
        """
        if not bearer_token or not self.tokens.configured:
            return None
        verification = self.tokens.verify_typed(bearer_token, "access")
        if not verification.valid:
            return None
        user_id = subject_user_id(verification.payload or {})
        if user_id is None:
            return None
        user = self.session.get(User, user_id)
        if user is None or not user.is_active:
            return None
        try:
            return CurrentUser.model_validate(user)
        except ValidationError:
            logger.warning("User id=%s has an unknown role; treating as unauthenticated", user.id)
            return None

    def _shared_token_matches(self, provided: str | None) -> bool:
        if not self.shared_token or not provided:
            return False
        return constant_time_equals(provided.encode("utf-8"), self.shared_token.encode("utf-8"))

    def authorize(
        self,
        method: str,
        action: str | None,
        bearer_token: str | None,
        provided_token: str | None = None,
    ) -> GateDecision:
        """
        Run the access policy for one request.

        provided_token is a token sent outside the Authorization header (e.g. the
        token query parameter); the bearer token takes precedence. It only matters
        on shared_token actions.
        """
        level = classify_action(method, action)
        user = self.authenticate(bearer_token)

        if level == "jwt_required" and user is None:
            return GateDecision(
                access_level=level, failure=AuthFailure.of(AuthErrorCode.UNAUTHORIZED)
            )
        if (
            level == "shared_token"
            and self.shared_token
            and user is None
            and not self._shared_token_matches(bearer_token or provided_token)
        ):
            logger.debug("Rejected action=%s: no user and no matching shared token", action)
            return GateDecision(
                access_level=level, failure=AuthFailure.of(AuthErrorCode.UNAUTHORIZED)
            )
        return GateDecision(access_level=level, user=user)
