"""Data retention: purge login counters whose window and lock have both lapsed.

Refresh-token records are never deleted here; revoked and expired rows stay for audit.
"""

import logging
from datetime import timedelta
from typing import TYPE_CHECKING

from sqlalchemy import delete, or_
from sqlalchemy.orm import Session

from app.core.crypto import Clock, SystemClock
from app.models import LoginAttempt

if TYPE_CHECKING:
    from app.core.config import Settings

logger = logging.getLogger(__name__)


def run_retention(session: Session, settings: "Settings", clock: Clock | None = None) -> int:
    """
    Delete auth_login_attempts rows older than RETENTION_HOURS whose throttle window
    has passed and whose lock, if any, has ended.

    Returns the number of rows deleted. Idempotent: safe to run repeatedly.
    """
    if not settings.RETENTION_ENABLED:
        logger.info("Retention is disabled (RETENTION_ENABLED=false); skipping.")
        return 0

    now = (clock or SystemClock()).now()
    window_start = now - timedelta(seconds=settings.LOGIN_WINDOW_SECONDS)
    cutoff = min(window_start, now - timedelta(hours=settings.RETENTION_HOURS))

    deleted_count = session.execute(
        delete(LoginAttempt)
        .where(
            LoginAttempt.first_attempt_at < cutoff,
            or_(LoginAttempt.locked_until.is_(None), LoginAttempt.locked_until <= now),
        )
        .execution_options(synchronize_session=False)
    ).rowcount
    session.commit()

    if deleted_count > 0:
        logger.info(
            "Retention run: cutoff=%s, login_attempts_deleted=%s",
            cutoff.isoformat(),
            deleted_count,
        )
    return deleted_count
