"""
CLI entrypoint for the auth retention job. Run from cron, e.g.:

  python -m app.retention

Or hourly: 0 * * * * cd /path/to/club-auth && .venv/bin/python -m app.retention
"""

import logging
import sys

from sqlalchemy.exc import SQLAlchemyError

from app.core.config import get_settings
from app.core.database import SessionLocal
from app.services.retention import run_retention

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%SZ",
)
logger = logging.getLogger(__name__)


def main() -> int:
    """Purge lapsed login counters."""
    settings = get_settings()
    db = SessionLocal()
    try:
        attempts_deleted = run_retention(db, settings)
        logger.info("Retention completed: login_attempts_deleted=%s", attempts_deleted)
        return 0
    except SQLAlchemyError:
        logger.exception("Retention job failed")
        return 1
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
