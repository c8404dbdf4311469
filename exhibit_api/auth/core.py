from __future__ import annotations

import hashlib
import hmac
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
from jose import jwt

from ..clock import as_utc, utcnow
from ..config import settings

# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------

# bcrypt ignores everything past this; refuse rather than truncate
BCRYPT_MAX_BYTES = 72


def hash_password(plain: str) -> str:
    """bcrypt hash with the configured work factor. Raises ValueError on bad input."""
    encoded = plain.encode()
    if len(encoded) > BCRYPT_MAX_BYTES:
        raise ValueError(f"Password exceeds {BCRYPT_MAX_BYTES} bytes.")
    return bcrypt.hashpw(encoded, bcrypt.gensalt(rounds=settings.bcrypt_rounds)).decode()


def verify_password(plain: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(plain.encode(), hashed.encode())
    except ValueError:
        # Malformed stored hash or over-long candidate: a mismatch, nothing more.
        return False


# ---------------------------------------------------------------------------
# Short-lived secrets
# ---------------------------------------------------------------------------

def generate_verification_code() -> str:
    """Six-digit numeric code, uniform over 100000..999999."""
    return str(100_000 + secrets.randbelow(900_000))


def generate_reset_token() -> str:
    return secrets.token_hex(20)


def hash_token(raw: str) -> str:
    return hashlib.sha256(raw.encode()).hexdigest()


def secret_is_valid(
    candidate: Optional[str],
    stored: Optional[str],
    expires: Optional[datetime],
    now: Optional[datetime] = None,
) -> bool:
    """
    True iff a secret is present, unexpired and matches exactly.

    Matching is case- and whitespace-sensitive; callers normalise input
    before calling. Expiry must be strictly after ``now``.
    """
    if not stored or not expires or candidate is None:
        return False
    now = now or utcnow()
    if as_utc(expires) <= now:
        return False
    return hmac.compare_digest(candidate.encode(), stored.encode())


# ---------------------------------------------------------------------------
# JWT
# ---------------------------------------------------------------------------

ALGORITHM = "HS256"


def password_fingerprint(password_hash: Optional[str]) -> str:
    """
    Keyed digest of the stored hash, carried in tokens as ``pwd``.

    Every ``set_password`` produces a fresh salt and so a new fingerprint,
    which invalidates every token issued before it, however recently.
    """
    return hmac.new(
        settings.jwt_secret.encode(), (password_hash or "").encode(), hashlib.sha256
    ).hexdigest()[:32]


def token_matches_password(payload: dict, password_hash: Optional[str]) -> bool:
    claim = payload.get("pwd")
    if not isinstance(claim, str):
        return False
    return hmac.compare_digest(claim, password_fingerprint(password_hash))


def create_access_token(
    user_id: int,
    email: str,
    role: str,
    first_name: str = "",
    last_name: str = "",
    expires_minutes: int | None = None,
    password_hash: Optional[str] = None,
) -> str:
    minutes = expires_minutes or settings.jwt_expire_minutes
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "email": email,
        "role": role,
        "first_name": first_name,
        "last_name": last_name,
        "exp": now + timedelta(minutes=minutes),
        "iat": now,
        "pwd": password_fingerprint(password_hash),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=ALGORITHM)


def decode_token(token: str) -> dict:
    """Decode and validate JWT. Raises JWTError on failure."""
    return jwt.decode(token, settings.jwt_secret, algorithms=[ALGORITHM])
