"""ORM model for failed-login counters keyed by (identifier, client IP)."""

from sqlalchemy import Column, DateTime, Integer, String

from app.models.base import Base


class LoginAttempt(Base):
    """Sliding-window failure counter; deleted on successful login."""

    __tablename__ = "auth_login_attempts"

    identifier = Column(String(255), primary_key=True)
    ip_address = Column(String(64), primary_key=True)
    attempt_count = Column(Integer, nullable=False, default=0)
    first_attempt_at = Column(DateTime(timezone=True), nullable=False)
    locked_until = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=False)
