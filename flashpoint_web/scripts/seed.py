"""
Seed the system roles, permission catalog and default grants. Idempotent. Run from project root:
  python -m flashpoint_web.scripts.seed
"""
import logging
import sys

from flashpoint_web.core.database import SessionLocal
from flashpoint_web.services.bootstrap import seed_auth_catalog

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%SZ",
)
logger = logging.getLogger(__name__)


def main() -> int:
    db = SessionLocal()
    try:
        inserted = seed_auth_catalog(db)
        print(
            "Seeded roles={roles} permissions={permissions} grants={grants}.".format(**inserted)
        )
        return 0
    except Exception as e:
        logger.exception("Seeding failed: %s", e)
        return 1
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
