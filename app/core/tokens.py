"""Signed HS256 tokens: short-lived access tokens and long-lived refresh tokens.

Wire format is a standard compact JWS:
  base64url({"alg":"HS256","typ":"JWT"}) . base64url(payload) . base64url(HMAC-SHA256)
Payload always carries sub, iat, exp and typ ("access" | "refresh"); refresh tokens add jti.
"""

from typing import Any

import jwt

from app.core.crypto import Clock, SystemClock
from app.schemas.auth import AuthErrorCode, TokenType, TokenVerification

JWT_ALGORITHM = "HS256"
ACCESS_TOKEN_TTL_SECONDS = 15 * 60
REFRESH_TOKEN_TTL_SECONDS = 30 * 24 * 60 * 60

# Expiry is checked against the injected clock, not PyJWT's wall clock.
_DECODE_OPTIONS = {
    "verify_signature": True,
    "verify_exp": False,
    "verify_nbf": False,
    "verify_iat": False,
    "verify_aud": False,
    "verify_iss": False,
    "verify_sub": False,
    "verify_jti": False,
}


class MissingSigningSecret(RuntimeError):
    """Raised when a token is signed without a configured secret."""


class TokenService:
    """Sign and verify tokens with one HMAC secret."""

    def __init__(
        self,
        secret: str | None,
        clock: Clock | None = None,
        access_ttl_seconds: int = ACCESS_TOKEN_TTL_SECONDS,
        refresh_ttl_seconds: int = REFRESH_TOKEN_TTL_SECONDS,
    ) -> None:
        self.secret = secret or None
        self.clock = clock or SystemClock()
        self.access_ttl_seconds = access_ttl_seconds
        self.refresh_ttl_seconds = refresh_ttl_seconds

    @property
    def configured(self) -> bool:
        return self.secret is not None

    def _now_ts(self) -> int:
        return int(self.clock.now().timestamp())

    def sign(
        self,
        claims: dict[str, Any],
        ttl_seconds: int,
        token_type: TokenType,
        secret: str | None = None,
    ) -> str:
        """Return a signed token for claims plus iat/exp/typ."""
        key = secret or self.secret
        if not key:
            raise MissingSigningSecret("AUTH_SECRET is not configured")
        issued_at = self._now_ts()
        payload = {**claims, "iat": issued_at, "exp": issued_at + ttl_seconds, "typ": token_type}
        return jwt.encode(payload, key, algorithm=JWT_ALGORITHM)

    def verify(self, token: str, secret: str | None = None) -> TokenVerification:
        """
        Verify signature and expiry. Never returns a partially parsed payload.

        Errors: invalid_token (shape, encoding, JSON), invalid_signature, token_expired,
        config_error (no secret).
        """
        key = secret or self.secret
        if not key:
            return TokenVerification(valid=False, error=AuthErrorCode.CONFIG_ERROR)
        if not isinstance(token, str) or token.count(".") != 2:
            return TokenVerification(valid=False, error=AuthErrorCode.INVALID_TOKEN)
        try:
            payload = jwt.decode(
                token,
                key,
                algorithms=[JWT_ALGORITHM],
                options=_DECODE_OPTIONS,
            )
        except jwt.InvalidSignatureError:
            return TokenVerification(valid=False, error=AuthErrorCode.INVALID_SIGNATURE)
        except jwt.PyJWTError:
            return TokenVerification(valid=False, error=AuthErrorCode.INVALID_TOKEN)

        exp = payload.get("exp")
        if exp is not None:
            if not isinstance(exp, (int, float)) or isinstance(exp, bool):
                return TokenVerification(valid=False, error=AuthErrorCode.INVALID_TOKEN)
            if exp < self._now_ts():
                return TokenVerification(valid=False, error=AuthErrorCode.TOKEN_EXPIRED)
        return TokenVerification(valid=True, payload=payload)

    def issue_access(self, user_id: int | str) -> str:
        """Access token: subject only, never persisted."""
        return self.sign({"sub": str(user_id)}, self.access_ttl_seconds, "access")

    def issue_refresh(self, user_id: int | str, jti: str) -> str:
        """Refresh token: subject plus jti; must be checked against the refresh store."""
        return self.sign({"sub": str(user_id), "jti": jti}, self.refresh_ttl_seconds, "refresh")

    def verify_typed(self, token: str, token_type: TokenType) -> TokenVerification:
        """Verify and additionally require typ == token_type and a subject."""
        result = self.verify(token)
        if not result.valid:
            return result
        payload = result.payload or {}
        if payload.get("typ") != token_type or payload.get("sub") in (None, ""):
            return TokenVerification(valid=False, error=AuthErrorCode.INVALID_TOKEN)
        if token_type == "refresh" and not payload.get("jti"):
            return TokenVerification(valid=False, error=AuthErrorCode.INVALID_TOKEN)
        return result


def subject_user_id(payload: dict[str, Any]) -> int | None:
    """Parse the sub claim as an integer user id (older tokens carry a JSON number)."""
    sub = payload.get("sub")
    if isinstance(sub, bool):
        return None
    try:
        return int(sub)
    except (TypeError, ValueError):
        return None
