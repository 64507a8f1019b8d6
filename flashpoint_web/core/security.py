"""Password hashing, JWT creation/verification and refresh token generation."""

import secrets
from datetime import UTC, datetime, timedelta
from typing import Any

import bcrypt
import jwt

# Min/max lengths for username and password validation.
USERNAME_MIN_LEN = 3
USERNAME_MAX_LEN = 50
PASSWORD_MIN_LEN = 6
PASSWORD_MAX_LEN = 128

# 64 random bytes, hex encoded (128 chars) to fit refresh_tokens.token.
REFRESH_TOKEN_BYTES = 64

ACCESS_TOKEN_TYPE = "access"

_dummy_hash: bytes | None = None


def utc_now() -> datetime:
    """Timezone-aware current time in UTC (default clock for services)."""
    return datetime.now(UTC)


def hash_password(plain_password: str, rounds: int) -> str:
    """Hash a plain-text password for storage. Do not store plain passwords."""
    # bcrypt has a 72-byte limit; truncate to avoid errors (validation already limits length).
    pw_bytes = plain_password.encode("utf-8")[:72]
    return bcrypt.hashpw(pw_bytes, bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(plain_password: str, hashed: str) -> bool:
    """Verify a plain password against a stored hash (constant-time compare)."""
    pw_bytes = plain_password.encode("utf-8")[:72]
    try:
        return bcrypt.checkpw(pw_bytes, hashed.encode("utf-8"))
    except (ValueError, TypeError):
        return False


def burn_password_check(plain_password: str) -> None:
    """
    Run one bcrypt comparison against a throwaway hash.

    Used when the username does not exist so that the response time does not
    reveal whether an account exists.
    """
    global _dummy_hash
    if _dummy_hash is None:
        _dummy_hash = bcrypt.hashpw(b"not-a-real-password", bcrypt.gensalt(rounds=10))
    bcrypt.checkpw(plain_password.encode("utf-8")[:72], _dummy_hash)


def create_access_token(
    sub: int,
    username: str,
    role: str,
    *,
    secret: str,
    algorithm: str,
    expires_delta: timedelta,
    now: datetime | None = None,
) -> str:
    """Create a JWT access token with sub (user id), username, role, iat and exp."""
    issued = now or utc_now()
    payload: dict[str, Any] = {
        "sub": str(sub),
        "username": username,
        "role": role,
        "type": ACCESS_TOKEN_TYPE,
        "iat": issued,
        "exp": issued + expires_delta,
    }
    return jwt.encode(payload, secret, algorithm=algorithm)


def decode_access_token(token: str, *, secret: str, algorithm: str) -> dict[str, Any]:
    """
    Decode and validate JWT; return payload (sub, username, role, type, iat, exp).
    Raises jwt.PyJWTError on invalid or expired token.
    """
    return jwt.decode(
        token,
        secret,
        algorithms=[algorithm],
        options={"require": ["sub", "exp", "iat"]},
    )


def generate_refresh_token() -> str:
    """Opaque, unguessable refresh token value."""
    return secrets.token_hex(REFRESH_TOKEN_BYTES)
