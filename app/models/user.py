"""ORM model for club members (auth reads role/active and owns password_hash)."""

from sqlalchemy import Boolean, Column, DateTime, Integer, String, func

from app.models.base import Base


class User(Base):
    """
    Club account for token authentication and role checks.

    role: 'athlete', 'coach', 'committee' or 'admin'
    password_hash: NULL until the first successful login sets it.
    """

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(255), nullable=True, index=True)
    display_name = Column(String(255), nullable=False, index=True)
    role = Column(String(32), nullable=False, default="athlete")
    password_hash = Column(String(255), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
