"""Token service: signed access tokens and single-use, rotating refresh tokens.

Access tokens carry identity only (user id, username, role name); permissions
are resolved fresh on every verification so revocations take effect at once.
Refresh tokens are opaque random values stored in refresh_tokens. A refresh
token can be exchanged exactly once: rotation revokes it with a conditional
UPDATE and inserts its successor in the same transaction, so two requests
racing on one token can never both win.
"""

import logging
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

import jwt
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from flashpoint_web.core.config import Settings
from flashpoint_web.core.database import atomic
from flashpoint_web.core.exceptions import (
    AccountInactiveError,
    TokenInvalidError,
    TokenRevokedError,
)
from flashpoint_web.core.security import (
    ACCESS_TOKEN_TYPE,
    create_access_token,
    decode_access_token,
    generate_refresh_token,
    utc_now,
)
from flashpoint_web.models import RefreshToken, User
from flashpoint_web.schemas.auth import AccessClaims, TokenPair

logger = logging.getLogger(__name__)


class TokenService:
    def __init__(
        self,
        db: Session,
        settings: Settings,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.db = db
        self.settings = settings
        self._now = clock

    @property
    def access_token_ttl(self) -> timedelta:
        return timedelta(minutes=self.settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    @property
    def refresh_token_ttl(self) -> timedelta:
        return timedelta(days=self.settings.REFRESH_TOKEN_EXPIRE_DAYS)

    def _mint(self, user: User) -> TokenPair:
        """Create both tokens and stage the refresh row in the current transaction."""
        now = self._now()
        access_token = create_access_token(
            user.id,
            user.username,
            user.role_name,
            secret=self.settings.JWT_SECRET.get_secret_value(),
            algorithm=self.settings.JWT_ALGORITHM,
            expires_delta=self.access_token_ttl,
            now=now,
        )
        refresh_token = generate_refresh_token()
        self.db.add(
            RefreshToken(
                user_id=user.id,
                token=refresh_token,
                expires_at=now + self.refresh_token_ttl,
            )
        )
        return TokenPair(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=int(self.access_token_ttl.total_seconds()),
        )

    def issue(self, user: User) -> TokenPair:
        """Issue a fresh access/refresh pair and persist the refresh token."""
        with atomic(self.db):
            pair = self._mint(user)
        logger.debug("Issued token pair", extra={"user_id": user.id})
        return pair

    def verify_access(self, token: str) -> AccessClaims:
        """Validate signature, expiry and token type. Does not touch the database."""
        try:
            payload = decode_access_token(
                token,
                secret=self.settings.JWT_SECRET.get_secret_value(),
                algorithm=self.settings.JWT_ALGORITHM,
            )
        except jwt.PyJWTError as e:
            raise TokenInvalidError() from e
        if payload.get("type") != ACCESS_TOKEN_TYPE:
            raise TokenInvalidError()
        try:
            return AccessClaims(
                subject_id=int(payload["sub"]),
                username=payload["username"],
                role_name=payload["role"],
                issued_at=datetime.fromtimestamp(payload["iat"], tz=UTC),
                expires_at=datetime.fromtimestamp(payload["exp"], tz=UTC),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise TokenInvalidError() from e

    def rotate(self, old_refresh_token: str) -> tuple[User, TokenPair]:
        """
        Exchange a live refresh token for a new pair.

        Revoke-old, insert-new and access-token minting happen in one transaction.
        The revoke is a conditional UPDATE that must hit exactly one live row;
        a concurrent rotation of the same token finds it already revoked.
        """
        with atomic(self.db):
            now = self._now()
            result = self.db.execute(
                update(RefreshToken)
                .where(
                    RefreshToken.token == old_refresh_token,
                    RefreshToken.revoked_at.is_(None),
                    RefreshToken.expires_at > now,
                )
                .values(revoked_at=now)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                self._raise_for_dead_token(old_refresh_token)
            user_id = self.db.execute(
                select(RefreshToken.user_id).where(RefreshToken.token == old_refresh_token)
            ).scalar_one()
            user = self.db.execute(
                select(User).where(User.id == user_id, User.is_active.is_(True))
            ).scalar_one_or_none()
            if user is None:
                raise AccountInactiveError()
            pair = self._mint(user)
        logger.info("Rotated refresh token", extra={"user_id": user.id})
        return user, pair

    def _raise_for_dead_token(self, token: str) -> None:
        revoked = self.db.execute(
            select(RefreshToken.user_id).where(
                RefreshToken.token == token,
                RefreshToken.revoked_at.is_not(None),
            )
        ).scalar_one_or_none()
        if revoked is not None:
            logger.warning("Revoked refresh token presented", extra={"user_id": revoked})
            raise TokenRevokedError()
        raise TokenInvalidError("Invalid or expired refresh token")

    def revoke(self, refresh_token: str) -> bool:
        """Revoke one token. Unknown or already revoked tokens are not an error."""
        with atomic(self.db):
            result = self.db.execute(
                update(RefreshToken)
                .where(RefreshToken.token == refresh_token, RefreshToken.revoked_at.is_(None))
                .values(revoked_at=self._now())
                .execution_options(synchronize_session=False)
            )
        return result.rowcount > 0

    def revoke_all(self, user_id: int) -> int:
        """Revoke every live refresh token of a user (logout everywhere, password reset)."""
        with atomic(self.db):
            result = self.db.execute(
                update(RefreshToken)
                .where(RefreshToken.user_id == user_id, RefreshToken.revoked_at.is_(None))
                .values(revoked_at=self._now())
                .execution_options(synchronize_session=False)
            )
        logger.info(
            "Revoked all refresh tokens",
            extra={"user_id": user_id, "revoked": result.rowcount},
        )
        return result.rowcount

    def cleanup_expired(self) -> int:
        """Delete refresh token rows past their expiry."""
        now = self._now()
        with atomic(self.db):
            deleted = (
                self.db.query(RefreshToken)
                .filter(RefreshToken.expires_at < now)
                .delete(synchronize_session=False)
            )
        return deleted
