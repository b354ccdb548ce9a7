"""
core/security.py
----------------
Password hashing, one-time codes and session token utilities.

Design decisions:
  - bcrypt via passlib; work factor comes from settings (12 in production,
    tests lower it to keep the suite fast).
  - Session tokens are HS256 JWTs carrying sub (user_id), tenant_id and
    role. A random jti makes every token unique even when two logins for
    the same user land in the same second.
  - Only SHA-256 digests of session tokens and one-time codes are stored
    server-side, so a leaked sessions table cannot be replayed.
"""

import hashlib
import secrets
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import jwt
from passlib.context import CryptContext

from gymdesk.core.config import settings

pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.BCRYPT_ROUNDS,
)

SUPER_ADMIN_ROLE = "SuperAdmin"


# ── Password Utilities ────────────────────────────────────────────────────────

def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the plain-text password."""
    return pwd_context.hash(plain)


def verify_password(plain: str, hashed: str) -> bool:
    """Constant-time comparison of plain password against stored hash."""
    return pwd_context.verify(plain, hashed)


# ── One-time Codes ────────────────────────────────────────────────────────────

def generate_otp() -> str:
    """Six-digit numeric code, uniformly drawn from 100000-999999."""
    return str(100000 + secrets.randbelow(900000))


def digest(value: str) -> str:
    """Hex SHA-256 of a token or code, used as the persisted lookup key."""
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


# ── JWT Utilities ─────────────────────────────────────────────────────────────

def create_session_token(
    subject: str,
    tenant_id: Optional[str],
    role: str,
    issued_at: Optional[datetime] = None,
    expires_delta: Optional[timedelta] = None,
    super_admin: bool = False,
) -> tuple[str, datetime]:
    """
    Mint a signed session token.

    Args:
        subject: User UUID (stored in 'sub' claim).
        tenant_id: Company UUID; None for super-admin tokens.
        role: Role name at login time. Informational only: ordinary
              sessions re-read the role from the database on resolution.
        issued_at: Defaults to now (UTC).
        expires_delta: Defaults to SESSION_EXPIRE_DAYS.
        super_admin: Marks a platform-level token that never hits the
                     sessions table.

    Returns:
        (token, expires_at)
    """
    now = issued_at or datetime.now(timezone.utc)
    expires_at = now + (expires_delta or timedelta(days=settings.SESSION_EXPIRE_DAYS))
    payload: Dict[str, Any] = {
        "sub": subject,
        "tenant_id": tenant_id,
        "role": role,
        "iat": now,
        "exp": expires_at,
        "jti": uuid.uuid4().hex,
    }
    if super_admin:
        payload["is_super_admin"] = True
    token = jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)
    return token, expires_at


def decode_session_token(token: str) -> Dict[str, Any]:
    """
    Decode and validate a session token (signature + exp).

    Raises:
        JWTError: If the token is invalid, expired, or tampered with.
    """
    return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
