from __future__ import annotations

import logging
from typing import Optional

from fastapi import Request

from ..clock import utcnow
from ..database import db_session
from ..models import LoginHistory, User

logger = logging.getLogger("exhibit.audit")


def log_signin(user_id: int, request: Request, method: str = "password") -> Optional[LoginHistory]:
    """
    Persist a successful sign-in and bump the user's login counters.

    The client address is the raw socket peer; forwarded headers are a
    rate-limiting concern and are not trusted for the audit trail.
    """
    ip = request.client.host if request.client else None
    ua = request.headers.get("user-agent", "")[:512]

    with db_session() as session:
        user = session.get(User, user_id)
        if user is None:
            return None
        user.last_login_at = utcnow()
        user.login_count = (user.login_count or 0) + 1
        row = LoginHistory(
            user_id=user.id,
            email=user.email,
            ip_address=ip,
            user_agent=ua,
            method=method,
        )
        session.add(row)

    logger.info("Sign-in: user_id=%s ip=%s", user_id, ip)
    return row
