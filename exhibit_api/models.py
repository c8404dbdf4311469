from __future__ import annotations

import datetime as dt
from typing import Optional

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Integer, String, Text, event
from sqlalchemy.orm import Mapped, mapped_column

from .clock import utcnow
from .database import Base

ROLES = ("user", "admin", "superadmin")


class User(Base):
    """Member account. Credential fields are managed by ``auth.credentials``."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    first_name: Mapped[str] = mapped_column(String(128))
    last_name: Mapped[str] = mapped_column(String(128))
    email: Mapped[str] = mapped_column(String(256), unique=True, index=True)
    role: Mapped[str] = mapped_column(String(32), default="user", index=True)  # user | admin | superadmin
    is_verified: Mapped[bool] = mapped_column(Boolean, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    profile_picture: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)

    # Credentials
    password_hash: Mapped[str] = mapped_column(String(128))
    password_last_changed: Mapped[Optional[dt.datetime]] = mapped_column(DateTime, nullable=True)
    verification_code: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    verification_code_expires: Mapped[Optional[dt.datetime]] = mapped_column(DateTime, nullable=True)
    reset_password_token: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    reset_password_expires: Mapped[Optional[dt.datetime]] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[dt.datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[dt.datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)
    last_login_at: Mapped[Optional[dt.datetime]] = mapped_column(DateTime, nullable=True)
    login_count: Mapped[int] = mapped_column(Integer, default=0)

    def set_password(self, plain: str) -> None:
        """Hash and store a new password. ``password_last_changed`` follows automatically."""
        from .auth.core import hash_password

        self.password_hash = hash_password(plain)

    def check_password(self, plain: str) -> bool:
        from .auth.core import verify_password

        return verify_password(plain, self.password_hash)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


@event.listens_for(User.password_hash, "set")
def _stamp_password_change(target: User, value, oldvalue, initiator) -> None:
    # Fires on every assignment, including the constructor; never on row loads.
    target.password_last_changed = utcnow()


class LoginHistory(Base):
    """Tracks every successful sign-in per user."""

    __tablename__ = "login_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True)
    email: Mapped[str] = mapped_column(String(256), index=True)
    ip_address: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    method: Mapped[str] = mapped_column(String(16), default="password")
    created_at: Mapped[dt.datetime] = mapped_column(DateTime, default=utcnow, index=True)


class Event(Base):
    """An exhibit or event listed for members."""

    __tablename__ = "events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    title: Mapped[str] = mapped_column(String(256))
    location: Mapped[str] = mapped_column(String(256))
    date: Mapped[dt.date] = mapped_column(Date, index=True)
    time: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)  # free text, e.g. "10:00 - 16:00"
    description: Mapped[str] = mapped_column(Text)
    attendees: Mapped[int] = mapped_column(Integer, default=0)
    image: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    created_by: Mapped[Optional[str]] = mapped_column(String(256), nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[dt.datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)


class Feedback(Base):
    """Visitor feedback on an exhibit."""

    __tablename__ = "feedback"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    user_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
    )
    avatar: Mapped[str] = mapped_column(String(512))
    first_name: Mapped[str] = mapped_column(String(128))
    rating: Mapped[int] = mapped_column(Integer)  # 1..5
    thoughts: Mapped[str] = mapped_column(Text)
    suggestions: Mapped[str] = mapped_column(Text)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime, default=utcnow, index=True)
