"""Backup verification session: a short-lived "password re-entered" grant.

Destructive backup actions (create, restore, delete, download) need the user
to have re-entered their account password recently. The grant is carried as
a signed JWT in the ``backup_verified`` cookie and expires
``verification_minutes`` after its last refresh.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import bcrypt
import jwt
from sqlalchemy import text
from sqlalchemy.engine import Engine

logger = logging.getLogger(__name__)

COOKIE_NAME = "backup_verified"
JWT_ALGORITHM = "HS256"
TOKEN_AUDIENCE = "backup-verification"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class VerificationSession:
    """``verified`` flag plus the time it was last confirmed or refreshed."""

    user_id: str
    verified: bool = False
    verified_at: datetime | None = None

    def is_valid(self, ttl: timedelta, now: datetime | None = None) -> bool:
        if not self.verified or self.verified_at is None:
            return False
        now = now or _utcnow()
        return (now - self.verified_at) <= ttl

    def refresh(self, now: datetime | None = None) -> VerificationSession:
        self.verified = True
        self.verified_at = now or _utcnow()
        return self

    def to_token(self, secret_key: str, ttl: timedelta) -> str:
        """Encode as a JWT that expires ``ttl`` after ``verified_at``."""
        verified_at = self.verified_at or _utcnow()
        payload = {
            "sub": str(self.user_id),
            "aud": TOKEN_AUDIENCE,
            "iat": verified_at,
            "exp": verified_at + ttl,
        }
        return jwt.encode(payload, secret_key, algorithm=JWT_ALGORITHM)

    @classmethod
    def from_token(cls, token: str | None, secret_key: str, user_id: str) -> VerificationSession:
        """Decode a cookie value; anything invalid, expired or for another user is unverified."""
        if not token:
            return cls(user_id=user_id)
        try:
            payload = jwt.decode(token, secret_key, algorithms=[JWT_ALGORITHM], audience=TOKEN_AUDIENCE)
        except jwt.PyJWTError:
            return cls(user_id=user_id)
        if payload.get("sub") != str(user_id):
            return cls(user_id=user_id)
        verified_at = datetime.fromtimestamp(payload["iat"], tz=timezone.utc)
        return cls(user_id=user_id, verified=True, verified_at=verified_at)


def check_password(password: str, password_hash: str | None) -> bool:
    """bcrypt check; PHP ``$2y$`` hashes are read as ``$2b$``."""
    if not password or not password_hash:
        return False
    if password_hash.startswith("$2y$"):
        password_hash = "$2b$" + password_hash[4:]
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        logger.warning("Stored password hash is not a bcrypt hash")
        return False


def verify_password(engine: Engine, user_id: str, password: str) -> bool:
    """Check ``password`` against the user's stored hash."""
    with engine.connect() as conn:
        stored = conn.execute(
            text("SELECT password FROM users WHERE id = :user_id"),
            {"user_id": user_id},
        ).scalar_one_or_none()
    return check_password(password, stored)
