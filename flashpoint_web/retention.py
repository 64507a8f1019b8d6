"""
CLI entrypoint for the data retention job. Run from cron, e.g.:

  python -m flashpoint_web.retention

Or hourly: 0 * * * * cd /path/to/flashpoint-web && .venv/bin/python -m flashpoint_web.retention
"""

import logging
import sys

from flashpoint_web.core.config import get_settings
from flashpoint_web.core.database import SessionLocal
from flashpoint_web.services.retention import run_retention

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%SZ",
)
logger = logging.getLogger(__name__)


def main() -> int:
    """Run retention: purge old login attempts and expired refresh tokens."""
    settings = get_settings()
    db = SessionLocal()
    try:
        attempts_deleted, tokens_deleted = run_retention(db, settings)
        logger.info(
            "Retention completed: login_attempts_deleted=%s, refresh_tokens_deleted=%s",
            attempts_deleted,
            tokens_deleted,
        )
        return 0
    except Exception as e:
        logger.exception("Retention job failed: %s", e)
        return 1
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
