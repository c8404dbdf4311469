from __future__ import annotations

from typing import Optional

from fastapi import Cookie, Depends, HTTPException, Security, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError

from ..database import db_session
from ..models import User
from .core import decode_token, token_matches_password

bearer_scheme = HTTPBearer(auto_error=False)

SESSION_COOKIE = "token"


# ---------------------------------------------------------------------------
# Resolve current user from JWT (header or cookie)
# ---------------------------------------------------------------------------

def _predates_password_change(payload: dict, user: User) -> bool:
    # The pwd claim binds the token to the hash it was issued against
    return not token_matches_password(payload, user.password_hash)


def get_current_user(
    bearer: HTTPAuthorizationCredentials | None = Security(bearer_scheme),
    token: Optional[str] = Cookie(None),
) -> User:
    """
    Accepts either:
      - Authorization: Bearer <jwt>
      - the HTTP-only ``token`` cookie set by /auth/signin
    Returns the matching User or raises 401.
    """
    jwt_token = (bearer.credentials if bearer and bearer.credentials else None) or token
    if not jwt_token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="No credentials provided.",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        payload = decode_token(jwt_token)
        user_id = int(payload.get("sub", ""))
    except (JWTError, ValueError):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED,
                            detail="Invalid or expired token.")

    with db_session() as session:
        user = session.get(User, user_id)
    if not user or not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED,
                            detail="User not found or inactive.")
    if _predates_password_change(payload, user):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED,
                            detail="Session expired. Please sign in again.")
    return user


# ---------------------------------------------------------------------------
# Role guards
# ---------------------------------------------------------------------------

def require_admin(current_user: User = Depends(get_current_user)) -> User:
    if current_user.role not in ("superadmin", "admin"):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN,
                            detail="Admin access required.")
    return current_user


def require_superadmin(current_user: User = Depends(get_current_user)) -> User:
    if current_user.role != "superadmin":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN,
                            detail="Superadmin access required.")
    return current_user


def require_any(current_user: User = Depends(get_current_user)) -> User:
    """Any signed-in member."""
    return current_user
