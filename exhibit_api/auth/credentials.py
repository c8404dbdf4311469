"""
auth/credentials.py — Credential lifecycle on a User record
===========================================================
Issues, validates and consumes the short-lived secrets attached to a
user:

- email verification codes: 6 digits, stored as-is, valid for 1 hour
- password reset tokens: 20 random bytes hex-encoded; only the SHA-256
  digest is stored, valid for 10 minutes

Every secret is single use. ``consume_*`` clears the secret and its
expiry on an in-memory object. Request handlers use ``claim_*`` instead:
after the in-memory check it clears the secret with a conditional
``UPDATE ... WHERE <secret matches and is unexpired>`` and succeeds only
if that statement touched the row. Of two concurrent requests holding the
same secret, only one gets a row back, whatever the database's locking.
The clear and the change it authorises commit in one transaction.

Functions take an optional ``now`` so tests can pin the clock; otherwise
the process clock is used.
"""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import update
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import set_committed_value

from ..clock import as_utc, utcnow
from ..config import settings
from ..models import User
from .core import (
    generate_reset_token,
    generate_verification_code,
    hash_token,
    secret_is_valid,
)


def issue_verification_code(user: User, now: Optional[datetime] = None) -> str:
    """Attach a fresh code to ``user``, replacing any unused one, and return it."""
    now = now or utcnow()
    code = generate_verification_code()
    user.verification_code = code
    user.verification_code_expires = now + timedelta(minutes=settings.verification_code_ttl_minutes)
    return code


def verification_code_is_valid(user: User, candidate: str, now: Optional[datetime] = None) -> bool:
    return secret_is_valid(candidate, user.verification_code, user.verification_code_expires, now)


def consume_verification_code(user: User, candidate: str, now: Optional[datetime] = None) -> bool:
    if not verification_code_is_valid(user, candidate, now):
        return False
    user.verification_code = None
    user.verification_code_expires = None
    return True


def issue_reset_token(user: User, now: Optional[datetime] = None) -> str:
    """Store the digest of a new reset token on ``user``; return the raw token for delivery."""
    now = now or utcnow()
    raw = generate_reset_token()
    user.reset_password_token = hash_token(raw)
    user.reset_password_expires = now + timedelta(minutes=settings.reset_token_ttl_minutes)
    return raw


def reset_token_is_valid(user: User, raw_token: str, now: Optional[datetime] = None) -> bool:
    return secret_is_valid(hash_token(raw_token), user.reset_password_token, user.reset_password_expires, now)


def consume_reset_token(user: User, raw_token: str, now: Optional[datetime] = None) -> bool:
    if not reset_token_is_valid(user, raw_token, now):
        return False
    user.reset_password_token = None
    user.reset_password_expires = None
    return True


def reset_password(user: User, new_password: str) -> None:
    """Set a new password and drop every outstanding reset secret."""
    user.set_password(new_password)
    user.verification_code = None
    user.verification_code_expires = None
    user.reset_password_token = None
    user.reset_password_expires = None


# ---------------------------------------------------------------------------
# Claiming secrets against the database
# ---------------------------------------------------------------------------

def _claim(session: Session, user: User, secret_attr: str, expires_attr: str,
           stored_value: str, now: datetime) -> bool:
    secret_col = getattr(User, secret_attr)
    expires_col = getattr(User, expires_attr)
    # Expiry columns are naive UTC
    cutoff = as_utc(now).replace(tzinfo=None)
    result = session.execute(
        update(User)
        .where(User.id == user.id, secret_col == stored_value, expires_col > cutoff)
        .values({secret_attr: None, expires_attr: None})
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        return False
    set_committed_value(user, secret_attr, None)
    set_committed_value(user, expires_attr, None)
    return True


def claim_verification_code(session: Session, user: User, candidate: str,
                            now: Optional[datetime] = None) -> bool:
    """Consume a verification code so that at most one transaction ever succeeds with it."""
    now = now or utcnow()
    if not verification_code_is_valid(user, candidate, now):
        return False
    return _claim(session, user, "verification_code", "verification_code_expires", candidate, now)


def claim_reset_token(session: Session, user: User, raw_token: str,
                      now: Optional[datetime] = None) -> bool:
    """Consume a reset token so that at most one transaction ever succeeds with it."""
    now = now or utcnow()
    if not reset_token_is_valid(user, raw_token, now):
        return False
    return _claim(session, user, "reset_password_token", "reset_password_expires", hash_token(raw_token), now)
