"""ORM model for issued refresh tokens (rotation lineage and revocation)."""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String

from app.models.base import Base


class RefreshToken(Base):
    """
    One row per refresh token ever issued. Rows are revoked on rotation or logout
    and never deleted; they are kept for audit and replay detection.

    token_hash: SHA-256 hex of the token's jti; the raw jti is never stored.
    replaced_by: token_hash of the successor once this token has been rotated.
    """

    __tablename__ = "refresh_tokens"

    token_hash = Column(String(64), primary_key=True)
    user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    issued_at = Column(DateTime(timezone=True), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    revoked_at = Column(DateTime(timezone=True), nullable=True)
    replaced_by = Column(String(64), nullable=True)
