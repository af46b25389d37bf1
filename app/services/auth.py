"""Login, precheck, refresh, logout and password-update flows.

These are the operations the CRUD layer consumes. Each returns a typed result or an
AuthFailure; none raise for an auth decision.
"""

import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

from app.core.crypto import Clock, RandomSource, SystemClock
from app.core.security import PasswordHasher
from app.core.tokens import TokenService, subject_user_id
from app.models import User
from app.schemas.auth import (
    USER_ROLES,
    AuthErrorCode,
    AuthFailure,
    CurrentUser,
    LoginResult,
    PrecheckResult,
    TokenPair,
)
from app.services.auth_gate import AuthGate, require_auth, require_role
from app.services.login_throttle import LoginThrottle, normalize_identifier
from app.services.refresh_tokens import RefreshTokenStore
from app.services.users import UserRepository

if TYPE_CHECKING:
    from app.core.config import Settings

logger = logging.getLogger(__name__)

# Roles that may sign in with an identifier alone. None today: every club role needs a password.
PASSWORDLESS_ROLES: frozenset[str] = frozenset()

# Roles allowed to set passwords (admins pass implicitly).
PASSWORD_UPDATE_ROLES = ("coach",)


def _coerce_user_id(value: int | str) -> int | None:
    if isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


class AuthService:
    """Composes hasher, tokens, throttle, refresh store and gate over one DB session."""

    def __init__(
        self,
        session: Session,
        settings: "Settings",
        clock: Clock | None = None,
        random_source: RandomSource | None = None,
    ) -> None:
        clock = clock or SystemClock()
        secret = settings.AUTH_SECRET.get_secret_value() if settings.AUTH_SECRET else None
        shared = settings.SHARED_TOKEN.get_secret_value() if settings.SHARED_TOKEN else None

        self.session = session
        self.clock = clock
        self.tokens = TokenService(
            secret,
            clock=clock,
            access_ttl_seconds=settings.ACCESS_TOKEN_TTL_SECONDS,
            refresh_ttl_seconds=settings.REFRESH_TOKEN_TTL_SECONDS,
        )
        self.hasher = PasswordHasher(settings.PASSWORD_HASH_ITERATIONS, random_source)
        self.throttle = LoginThrottle.from_settings(session, settings, clock=clock)
        self.refresh_tokens = RefreshTokenStore(session, self.tokens, clock, random_source)
        self.users = UserRepository(session, clock)
        self.gate = AuthGate(session, self.tokens, shared_token=shared)

    # -- login ------------------------------------------------------------------

    def _failed_attempt(self, identifier: str, origin: str, code: AuthErrorCode) -> AuthFailure:
        status = self.throttle.register_failure(identifier, origin)
        if status.locked:
            return AuthFailure.of(AuthErrorCode.RATE_LIMITED)
        return AuthFailure.of(code)

    def login(
        self, identifier: str | None, password: str | None, origin: str
    ) -> LoginResult | AuthFailure:
        """
        Authenticate with identifier and password; issue an access/refresh pair.

        Throttle lockout is checked before the account is looked up, so a locked key
        never reaches password verification. An account without a password gets the
        supplied password as its first one.
        """
        key = normalize_identifier(identifier)
        if not key:
            return AuthFailure.of(AuthErrorCode.MISSING_PARAM, "Missing identifier")
        if not password:
            return AuthFailure.of(AuthErrorCode.MISSING_PARAM, "Missing password")
        if not self.tokens.configured:
            logger.error("Login rejected: AUTH_SECRET is not configured")
            return AuthFailure.of(AuthErrorCode.CONFIG_ERROR)

        if self.throttle.check(key, origin).locked:
            return AuthFailure.of(AuthErrorCode.RATE_LIMITED)

        user = self.users.find_by_identifier(key)
        if user is None or not user.is_active:
            return self._failed_attempt(key, origin, AuthErrorCode.ACCOUNT_NOT_FOUND)
        if user.role not in USER_ROLES:
            logger.warning("Login refused for user_id=%s with unknown role", user.id)
            return self._failed_attempt(key, origin, AuthErrorCode.ACCOUNT_NOT_FOUND)

        if user.role not in PASSWORDLESS_ROLES:
            if user.password_hash:
                verification = self.hasher.verify(password, user.password_hash)
                if not verification.valid:
                    return self._failed_attempt(key, origin, AuthErrorCode.INVALID_CREDENTIALS)
                if verification.needs_upgrade and verification.new_hash:
                    self.users.set_password_hash(user.id, verification.new_hash)
                    logger.info("Upgraded password hash for user_id=%s", user.id)
            else:
                self.users.set_password_hash(user.id, self.hasher.hash(password))
                logger.info("Set first password for user_id=%s", user.id)

        self.throttle.clear(key, origin)
        return self._issue_pair(user)

    def _issue_pair(self, user: User) -> LoginResult:
        issued = self.refresh_tokens.create(user.id)
        return LoginResult(
            user=CurrentUser.model_validate(user),
            access_token=self.tokens.issue_access(user.id),
            refresh_token=issued.refresh_token,
        )

    def precheck(self, identifier: str | None, origin: str) -> PrecheckResult | AuthFailure:
        """Tell the login form whether the account exists and needs a password."""
        key = normalize_identifier(identifier)
        if not key:
            return AuthFailure.of(AuthErrorCode.MISSING_PARAM, "Missing identifier")
        if self.throttle.check(key, origin).locked:
            return AuthFailure.of(AuthErrorCode.RATE_LIMITED)
        user = self.users.find_by_identifier(key)
        return PrecheckResult(
            account_exists=user is not None,
            requires_password=user is not None and user.role not in PASSWORDLESS_ROLES,
        )

    # -- refresh / logout -------------------------------------------------------

    def refresh(self, refresh_token: str | None) -> TokenPair | AuthFailure:
        """Exchange a live refresh token for a new pair; the presented token is revoked."""
        if not refresh_token:
            return AuthFailure.of(AuthErrorCode.MISSING_PARAM, "Missing refresh token")
        if not self.tokens.configured:
            return AuthFailure.of(AuthErrorCode.CONFIG_ERROR)

        verification = self.tokens.verify_typed(refresh_token, "refresh")
        if not verification.valid:
            return AuthFailure.of(verification.error or AuthErrorCode.INVALID_TOKEN)
        payload = verification.payload or {}
        jti = str(payload["jti"])
        user_id = subject_user_id(payload)
        if user_id is None:
            return AuthFailure.of(AuthErrorCode.INVALID_TOKEN)

        user = self.users.get(user_id)
        if user is None or not user.is_active:
            return AuthFailure.of(AuthErrorCode.INVALID_TOKEN)
        if self.refresh_tokens.validate(jti, user_id) is None:
            return AuthFailure.of(AuthErrorCode.INVALID_TOKEN)

        issued = self.refresh_tokens.rotate(jti, user_id)
        return TokenPair(
            access_token=self.tokens.issue_access(user_id),
            refresh_token=issued.refresh_token,
        )

    def logout(self, refresh_token: str | None) -> None:
        """Best-effort revoke of a refresh token; silently ignores anything unusable."""
        if not refresh_token or not self.tokens.configured:
            return
        verification = self.tokens.verify_typed(refresh_token, "refresh")
        if not verification.valid:
            return
        payload = verification.payload or {}
        user_id = subject_user_id(payload)
        if user_id is None:
            return
        self.refresh_tokens.revoke(str(payload["jti"]), user_id)

    # -- caller identity --------------------------------------------------------

    def authenticate(self, bearer_token: str | None) -> CurrentUser | None:
        return self.gate.authenticate(bearer_token)

    @staticmethod
    def require_role(user: CurrentUser | None, roles: Iterable[str]) -> AuthFailure | None:
        return require_role(user, roles)

    def update_password(
        self,
        actor: CurrentUser | None,
        password: str | None,
        target_user_id: int | str | None = None,
    ) -> AuthFailure | None:
        """
        Set a new password for the actor, or for another user when the actor is an admin.
        """
        failure = require_auth(actor) or require_role(actor, PASSWORD_UPDATE_ROLES)
        if failure is not None:
            return failure
        target_id = actor.id if target_user_id is None else _coerce_user_id(target_user_id)
        if target_id is None:
            return AuthFailure.of(AuthErrorCode.INVALID_PARAM, "Invalid user_id")
        if target_id != actor.id and actor.role != "admin":
            return AuthFailure.of(AuthErrorCode.FORBIDDEN)
        if not password:
            return AuthFailure.of(AuthErrorCode.MISSING_PARAM, "Missing password")

        target = self.users.get(target_id)
        if target is None or not target.is_active:
            return AuthFailure.of(AuthErrorCode.ACCOUNT_NOT_FOUND)
        self.users.set_password_hash(target.id, self.hasher.hash(password))
        logger.info("Password updated for user_id=%s by user_id=%s", target.id, actor.id)
        return None
