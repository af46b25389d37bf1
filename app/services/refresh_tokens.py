"""Persistence, rotation and revocation of refresh tokens.

Records are keyed by sha256(jti) so a dump of refresh_tokens never yields a usable
token id. Rotation inserts the successor before revoking the predecessor: a crash in
between leaves the old token usable rather than leaving the user with none.
"""

import logging
from datetime import timedelta

from sqlalchemy import insert, select, update
from sqlalchemy.orm import Session

from app.core.crypto import (
    Clock,
    RandomSource,
    SystemRandomSource,
    as_utc,
    b64url_encode,
    sha256_hex,
)
from app.core.tokens import TokenService
from app.models import RefreshToken
from app.schemas.auth import IssuedRefreshToken

logger = logging.getLogger(__name__)

REFRESH_TOKEN_ID_BYTES = 16


def hash_token_id(jti: str) -> str:
    """One-way hash under which a refresh token record is stored."""
    return sha256_hex(jti)


class RefreshTokenStore:
    """Create, validate, rotate and revoke refresh-token records."""

    def __init__(
        self,
        session: Session,
        tokens: TokenService,
        clock: Clock | None = None,
        random_source: RandomSource | None = None,
    ) -> None:
        self.session = session
        self.tokens = tokens
        self.clock = clock or tokens.clock
        self.random = random_source or SystemRandomSource()

    def _mint(self, user_id: int) -> tuple[IssuedRefreshToken, dict]:
        jti = b64url_encode(self.random.token_bytes(REFRESH_TOKEN_ID_BYTES))
        now = self.clock.now()
        expires_at = now + timedelta(seconds=self.tokens.refresh_ttl_seconds)
        issued = IssuedRefreshToken(
            jti=jti,
            refresh_token=self.tokens.issue_refresh(user_id, jti),
            expires_at=expires_at,
        )
        row = {
            "token_hash": hash_token_id(jti),
            "user_id": user_id,
            "issued_at": now,
            "expires_at": expires_at,
        }
        return issued, row

    def create(self, user_id: int) -> IssuedRefreshToken:
        """Sign a new refresh token for user_id and persist its hashed id."""
        issued, row = self._mint(user_id)
        self.session.execute(insert(RefreshToken).values(**row))
        self.session.commit()
        logger.debug("Issued refresh token for user_id=%s", user_id)
        return issued

    def validate(self, jti: str, user_id: int) -> RefreshToken | None:
        """
        Return the live record for (jti, user_id), or None.

        Unknown, revoked and expired tokens are indistinguishable to the caller.
        """
        if not jti:
            return None
        record = self.session.execute(
            select(RefreshToken).where(
                RefreshToken.token_hash == hash_token_id(jti),
                RefreshToken.user_id == user_id,
            )
        ).scalar_one_or_none()
        if record is None or record.revoked_at is not None:
            return None
        if as_utc(record.expires_at) <= self.clock.now():
            return None
        return record

    def rotate(self, old_jti: str, user_id: int) -> IssuedRefreshToken:
        """Issue the successor, then revoke old_jti and link it to the successor."""
        issued, row = self._mint(user_id)
        self.session.execute(insert(RefreshToken).values(**row))
        self.session.commit()

        self.session.execute(
            update(RefreshToken)
            .where(
                RefreshToken.token_hash == hash_token_id(old_jti),
                RefreshToken.user_id == user_id,
                RefreshToken.revoked_at.is_(None),
            )
            .values(revoked_at=self.clock.now(), replaced_by=row["token_hash"])
            .execution_options(synchronize_session=False)
        )
        self.session.commit()
        logger.info("Rotated refresh token for user_id=%s", user_id)
        return issued

    def revoke(self, jti: str, user_id: int) -> bool:
        """Revoke one token (logout). Idempotent; returns True if this call revoked it."""
        if not jti:
            return False
        result = self.session.execute(
            update(RefreshToken)
            .where(
                RefreshToken.token_hash == hash_token_id(jti),
                RefreshToken.user_id == user_id,
                RefreshToken.revoked_at.is_(None),
            )
            .values(revoked_at=self.clock.now())
            .execution_options(synchronize_session=False)
        )
        self.session.commit()
        revoked = result.rowcount > 0
        if revoked:
            logger.info("Revoked refresh token for user_id=%s", user_id)
        return revoked
