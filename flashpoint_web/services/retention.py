"""Data retention: purge old login attempts and expired refresh tokens."""

import logging
from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

from flashpoint_web.services.login_attempts import LoginAttemptLedger
from flashpoint_web.services.tokens import TokenService

if TYPE_CHECKING:
    from flashpoint_web.core.config import Settings

logger = logging.getLogger(__name__)


def run_retention(session: Session, settings: "Settings") -> tuple[int, int]:
    """
    Delete login attempts older than LOGIN_ATTEMPT_RETENTION_HOURS and refresh
    tokens past their expiry (revoked or not).

    Returns (login_attempts_deleted, refresh_tokens_deleted). Idempotent: safe to run repeatedly.
    """
    if not settings.RETENTION_ENABLED:
        logger.info("Retention is disabled (RETENTION_ENABLED=false); skipping.")
        return (0, 0)

    attempts_deleted = LoginAttemptLedger(session).cleanup(settings.LOGIN_ATTEMPT_RETENTION_HOURS)
    tokens_deleted = TokenService(session, settings).cleanup_expired()

    if attempts_deleted > 0 or tokens_deleted > 0:
        logger.info(
            "Retention run: login_attempts_deleted=%s, refresh_tokens_deleted=%s",
            attempts_deleted,
            tokens_deleted,
        )
    return (attempts_deleted, tokens_deleted)
