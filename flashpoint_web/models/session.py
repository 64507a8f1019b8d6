"""ORM models for login auditing and refresh-token sessions."""

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, func

from flashpoint_web.models.base import Base


class LoginAttempt(Base):
    """
    Append-only record of one login attempt.

    Rows are never updated; lockout is computed from failed rows inside a
    trailing window, and retention deletes rows older than 24 hours.
    """

    __tablename__ = "login_attempts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(255), nullable=False, index=True)
    ip_address = Column(String(64), nullable=False, index=True)
    success = Column(Boolean, nullable=False, default=False)
    attempted_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        index=True,
    )


class RefreshToken(Base):
    """
    Persisted opaque refresh token.

    Valid iff revoked_at IS NULL AND expires_at > now. Rotation sets revoked_at
    and inserts the successor in the same transaction.
    """

    __tablename__ = "refresh_tokens"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    token = Column(String(128), nullable=False, unique=True, index=True)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    revoked_at = Column(DateTime(timezone=True), nullable=True)
