"""
api/routes_users.py — Member and admin-role management
======================================================
Admins can browse members; only superadmins change roles, deactivate
or delete accounts. A superadmin cannot demote, deactivate or delete
their own account, so the site always keeps at least one.
"""
from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select

from ..auth.dependencies import require_admin, require_superadmin
from ..database import db_session
from ..models import LoginHistory, User
from ..schemas import ActiveUpdate, RoleUpdate, UserRead

logger = logging.getLogger("exhibit.users")

router = APIRouter(prefix="/users", tags=["users"])


def _get_or_404(session, user_id: int) -> User:
    user = session.get(User, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found.")
    return user


def _refuse_self(admin: User, user_id: int, action: str) -> None:
    if admin.id == user_id:
        raise HTTPException(status_code=400, detail=f"You cannot {action} your own account.")


@router.get("", response_model=List[UserRead])
def list_users(
    role: Optional[str] = Query(None, pattern="^(user|admin|superadmin)$"),
    admin: User = Depends(require_admin),
) -> List[UserRead]:
    with db_session() as session:
        stmt = select(User).order_by(User.created_at)
        if role:
            stmt = stmt.where(User.role == role)
        users = session.execute(stmt).scalars().all()
        return [UserRead.model_validate(u) for u in users]


@router.get("/admins", response_model=List[UserRead])
def list_admins(admin: User = Depends(require_superadmin)) -> List[UserRead]:
    with db_session() as session:
        users = session.execute(
            select(User).where(User.role == "admin").order_by(User.created_at)
        ).scalars().all()
        return [UserRead.model_validate(u) for u in users]


@router.get("/{user_id}", response_model=UserRead)
def get_user(user_id: int, admin: User = Depends(require_admin)) -> UserRead:
    with db_session() as session:
        return UserRead.model_validate(_get_or_404(session, user_id))


@router.patch("/{user_id}/role", response_model=UserRead)
def update_role(
    user_id: int,
    body: RoleUpdate,
    admin: User = Depends(require_superadmin),
) -> UserRead:
    _refuse_self(admin, user_id, "change the role of")
    with db_session() as session:
        user = _get_or_404(session, user_id)
        previous = user.role
        user.role = body.role
        session.flush()
        session.refresh(user)
        logger.info("User %s role %s -> %s by %s", user_id, previous, body.role, admin.id)
        return UserRead.model_validate(user)


@router.patch("/{user_id}/active", response_model=UserRead)
def set_active(
    user_id: int,
    body: ActiveUpdate,
    admin: User = Depends(require_superadmin),
) -> UserRead:
    _refuse_self(admin, user_id, "deactivate")
    with db_session() as session:
        user = _get_or_404(session, user_id)
        user.is_active = body.is_active
        session.flush()
        session.refresh(user)
        return UserRead.model_validate(user)


@router.delete("/{user_id}", status_code=204)
def delete_user(user_id: int, admin: User = Depends(require_superadmin)) -> None:
    _refuse_self(admin, user_id, "delete")
    with db_session() as session:
        user = _get_or_404(session, user_id)
        session.query(LoginHistory).filter(LoginHistory.user_id == user_id).delete()
        session.delete(user)
    logger.info("User %s deleted by %s", user_id, admin.id)
