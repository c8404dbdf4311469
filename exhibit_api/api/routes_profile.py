from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select

from .. import mailer
from ..auth import credentials
from ..auth.dependencies import require_any
from ..database import db_session
from ..models import User
from ..schemas import ProfileUpdate, UserRead

logger = logging.getLogger("exhibit.profile")

router = APIRouter(prefix="/profile", tags=["profile"])


@router.get("", response_model=UserRead)
def get_profile(current_user: User = Depends(require_any)) -> UserRead:
    return UserRead.model_validate(current_user)


@router.put("", response_model=UserRead)
def update_profile(body: ProfileUpdate, current_user: User = Depends(require_any)) -> UserRead:
    """Update own name, email or profile picture URL. A new email must be verified again; a code is sent to it."""
    code = None
    with db_session() as session:
        user = session.get(User, current_user.id)
        if not user:
            raise HTTPException(status_code=404, detail="User not found.")
        if body.first_name is not None:
            user.first_name = body.first_name.strip()
        if body.last_name is not None:
            user.last_name = body.last_name.strip()
        if body.email is not None:
            email = body.email.strip().lower()
            if email != user.email:
                taken = session.execute(
                    select(User.id).where(User.email == email)
                ).scalar_one_or_none()
                if taken:
                    raise HTTPException(status_code=409, detail="Email already in use.")
                user.email = email
                user.is_verified = False
                code = credentials.issue_verification_code(user)
        if body.profile_picture is not None:
            user.profile_picture = body.profile_picture
        session.flush()
        session.refresh(user)
        updated = UserRead.model_validate(user)

    if code and not mailer.send_verification_code(updated.email, code):
        logger.warning("Verification code for user %s could not be delivered", updated.id)
    return updated
