"""Brute-force login throttle keyed by (normalized identifier, client IP).

Per key: Clear -> Counting -> Locked -> Clear. All state lives in auth_login_attempts;
each failure is recorded with one INSERT ... ON CONFLICT DO UPDATE so concurrent
failures from the same caller cannot undercount.
"""

import logging
from datetime import timedelta
from typing import TYPE_CHECKING

from sqlalchemy import and_, case, delete, literal, select
from sqlalchemy.orm import Session

from app.core.crypto import Clock, SystemClock, as_utc
from app.core.database import upsert_insert
from app.models import LoginAttempt
from app.schemas.auth import ThrottleStatus

if TYPE_CHECKING:
    from app.core.config import Settings

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 5
DEFAULT_WINDOW_SECONDS = 15 * 60
DEFAULT_LOCK_SECONDS = 15 * 60


def normalize_identifier(value: object) -> str:
    """Trim and lower-case a login identifier (email or display name)."""
    if value is None:
        return ""
    return str(value).strip().lower()


class LoginThrottle:
    """Sliding-window failure counter with a temporary lockout."""

    def __init__(
        self,
        session: Session,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        window_seconds: int = DEFAULT_WINDOW_SECONDS,
        lock_seconds: int = DEFAULT_LOCK_SECONDS,
        clock: Clock | None = None,
    ) -> None:
        self.session = session
        self.max_attempts = max_attempts
        self.window = timedelta(seconds=window_seconds)
        self.lock_duration = timedelta(seconds=lock_seconds)
        self.clock = clock or SystemClock()

    @classmethod
    def from_settings(
        cls, session: Session, settings: "Settings", clock: Clock | None = None
    ) -> "LoginThrottle":
        return cls(
            session,
            max_attempts=settings.LOGIN_MAX_ATTEMPTS,
            window_seconds=settings.LOGIN_WINDOW_SECONDS,
            lock_seconds=settings.LOGIN_LOCK_SECONDS,
            clock=clock,
        )

    def _key(self, identifier: str, origin: str):
        return and_(
            LoginAttempt.identifier == normalize_identifier(identifier),
            LoginAttempt.ip_address == origin,
        )

    def check(self, identifier: str, origin: str) -> ThrottleStatus:
        """
        Return the counter for this key. locked_until is only set while the lock is
        still in the future; callers must reject before verifying any credential.
        """
        row = self.session.execute(
            select(LoginAttempt.attempt_count, LoginAttempt.locked_until).where(
                self._key(identifier, origin)
            )
        ).first()
        if row is None:
            return ThrottleStatus()
        locked_until = as_utc(row.locked_until) if row.locked_until is not None else None
        if locked_until is not None and locked_until <= self.clock.now():
            locked_until = None
        return ThrottleStatus(attempt_count=row.attempt_count, locked_until=locked_until)

    def register_failure(self, identifier: str, origin: str) -> ThrottleStatus:
        """Count one failed attempt; lock the key once the count reaches max_attempts."""
        now = self.clock.now()
        window_start = now - self.window
        lock_until = now + self.lock_duration
        datetime_type = LoginAttempt.first_attempt_at.type

        table = LoginAttempt.__table__
        in_window = table.c.first_attempt_at >= literal(window_start, datetime_type)
        next_count = case((in_window, table.c.attempt_count + 1), else_=1)

        stmt = upsert_insert(self.session, table).values(
            identifier=normalize_identifier(identifier),
            ip_address=origin,
            attempt_count=1,
            first_attempt_at=now,
            locked_until=lock_until if self.max_attempts <= 1 else None,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[table.c.identifier, table.c.ip_address],
            set_={
                "attempt_count": next_count,
                "first_attempt_at": case(
                    (in_window, table.c.first_attempt_at),
                    else_=literal(now, datetime_type),
                ),
                "locked_until": case(
                    (next_count >= self.max_attempts, literal(lock_until, datetime_type)),
                    else_=None,
                ),
                "updated_at": now,
            },
        ).returning(table.c.attempt_count, table.c.locked_until)

        row = self.session.execute(stmt).one()
        self.session.commit()

        locked_until = as_utc(row.locked_until) if row.locked_until is not None else None
        if locked_until is not None:
            logger.warning(
                "Login locked after %s failed attempts from %s until %s",
                row.attempt_count,
                origin,
                locked_until.isoformat(),
            )
        return ThrottleStatus(attempt_count=row.attempt_count, locked_until=locked_until)

    def clear(self, identifier: str, origin: str) -> None:
        """Drop the counter for this key (called on every successful login)."""
        self.session.execute(delete(LoginAttempt).where(self._key(identifier, origin)))
        self.session.commit()
