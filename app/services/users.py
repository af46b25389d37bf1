"""User lookups and password-hash writes used by the auth flows."""

from sqlalchemy import func, or_, select, update
from sqlalchemy.orm import Session

from app.core.crypto import Clock, SystemClock
from app.models import User
from app.services.login_throttle import normalize_identifier


class UserRepository:
    def __init__(self, session: Session, clock: Clock | None = None) -> None:
        self.session = session
        self.clock = clock or SystemClock()

    def get(self, user_id: int) -> User | None:
        return self.session.get(User, user_id)

    def find_by_identifier(self, identifier: str) -> User | None:
        """Match an identifier against email or display name, case-insensitively."""
        needle = normalize_identifier(identifier)
        if not needle:
            return None
        return self.session.execute(
            select(User)
            .where(or_(func.lower(User.email) == needle, func.lower(User.display_name) == needle))
            .order_by(User.id)
            .limit(1)
        ).scalar_one_or_none()

    def set_password_hash(self, user_id: int, password_hash: str) -> None:
        """Single-statement write of a new hash (first password or upgrade)."""
        self.session.execute(
            update(User)
            .where(User.id == user_id)
            .values(password_hash=password_hash, updated_at=self.clock.now())
            .execution_options(synchronize_session=False)
        )
        self.session.commit()

    def list_all(self) -> list[User]:
        return list(self.session.execute(select(User).order_by(User.id)).scalars())
