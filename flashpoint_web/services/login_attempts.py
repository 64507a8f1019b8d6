"""Login attempt ledger: append-only audit rows and sliding-window lockout."""

import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from flashpoint_web.core.database import atomic
from flashpoint_web.core.security import utc_now
from flashpoint_web.models import LoginAttempt

logger = logging.getLogger(__name__)

# Lockout windows are clamped to [1 minute, 24 hours].
MIN_LOCKOUT_MINUTES = 1
MAX_LOCKOUT_MINUTES = 1440
DEFAULT_RETENTION_HOURS = 24


def clamp_lockout_minutes(minutes: int) -> int:
    return min(max(int(minutes), MIN_LOCKOUT_MINUTES), MAX_LOCKOUT_MINUTES)


class LoginAttemptLedger:
    def __init__(self, db: Session, clock: Callable[[], datetime] = utc_now) -> None:
        self.db = db
        self._now = clock

    def record(self, username: str, ip_address: str, success: bool) -> None:
        """
        Append one attempt. Never raises: an audit-log outage must not block logins.
        """
        try:
            with atomic(self.db):
                self.db.add(
                    LoginAttempt(
                        username=username,
                        ip_address=ip_address,
                        success=success,
                        attempted_at=self._now(),
                    )
                )
        except Exception:
            logger.exception(
                "Failed to record login attempt",
                extra={"username": username, "ip_address": ip_address, "success": success},
            )

    def failed_count(
        self,
        since: datetime,
        username: str | None = None,
        ip_address: str | None = None,
    ) -> int:
        """Failed attempts after `since` for a username or an ip."""
        stmt = (
            select(func.count())
            .select_from(LoginAttempt)
            .where(LoginAttempt.success.is_(False), LoginAttempt.attempted_at > since)
        )
        if username is not None:
            stmt = stmt.where(LoginAttempt.username == username)
        if ip_address is not None:
            stmt = stmt.where(LoginAttempt.ip_address == ip_address)
        return self.db.execute(stmt).scalar_one()

    def is_locked(
        self,
        username: str,
        ip_address: str,
        max_attempts: int,
        lockout_minutes: int,
    ) -> bool:
        """
        Locked when failures for the username OR failures from the ip reach
        max_attempts inside the trailing lockout window.

        Derived from the ledger on every call, so expiry of the window is the
        only "unlock" there is.
        """
        max_attempts = max(int(max_attempts), 1)
        since = self._now() - timedelta(minutes=clamp_lockout_minutes(lockout_minutes))
        if self.failed_count(since, username=username) >= max_attempts:
            logger.warning("Login locked out by username", extra={"username": username})
            return True
        if self.failed_count(since, ip_address=ip_address) >= max_attempts:
            logger.warning("Login locked out by ip", extra={"ip_address": ip_address})
            return True
        return False

    def cleanup(self, retention_hours: int = DEFAULT_RETENTION_HOURS) -> int:
        """Delete attempts older than the retention window. Idempotent."""
        cutoff = self._now() - timedelta(hours=retention_hours)
        with atomic(self.db):
            deleted = (
                self.db.query(LoginAttempt)
                .filter(LoginAttempt.attempted_at < cutoff)
                .delete(synchronize_session=False)
            )
        if deleted > 0:
            logger.info(
                "Cleaned up old login attempts",
                extra={"cutoff": cutoff.isoformat(), "deleted": deleted},
            )
        return deleted
