from __future__ import annotations

import datetime as dt
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field


# ---------------------------------------------------------------------------
# Generic
# ---------------------------------------------------------------------------

class MessageResponse(BaseModel):
    message: str


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------

class UserRead(BaseModel):
    """Public view of a user. Credential fields are never serialised."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    first_name: str
    last_name: str
    email: str
    role: str
    is_verified: bool
    is_active: bool
    profile_picture: Optional[str] = None
    created_at: dt.datetime
    updated_at: Optional[dt.datetime] = None
    last_login_at: Optional[dt.datetime] = None
    login_count: int = 0


class RoleUpdate(BaseModel):
    role: str = Field(..., pattern="^(user|admin|superadmin)$")


class ActiveUpdate(BaseModel):
    is_active: bool


class ProfileUpdate(BaseModel):
    first_name: Optional[str] = Field(default=None, min_length=1, max_length=128)
    last_name: Optional[str] = Field(default=None, min_length=1, max_length=128)
    email: Optional[EmailStr] = None
    profile_picture: Optional[str] = Field(default=None, max_length=512)


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------

class EventBase(BaseModel):
    title: str = Field(..., min_length=1, max_length=256)
    location: str = Field(..., min_length=1, max_length=256)
    date: dt.date
    time: Optional[str] = Field(default=None, max_length=64)
    description: str = Field(..., min_length=1)
    attendees: int = Field(default=0, ge=0)
    image: Optional[str] = Field(default=None, max_length=512)


class EventCreate(EventBase):
    pass


class EventUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=256)
    location: Optional[str] = Field(default=None, min_length=1, max_length=256)
    date: Optional[dt.date] = None
    time: Optional[str] = Field(default=None, max_length=64)
    description: Optional[str] = Field(default=None, min_length=1)
    attendees: Optional[int] = Field(default=None, ge=0)
    image: Optional[str] = Field(default=None, max_length=512)


class EventRead(EventBase):
    model_config = ConfigDict(from_attributes=True)

    id: int
    created_by: Optional[str] = None
    created_at: dt.datetime
    updated_at: Optional[dt.datetime] = None


# ---------------------------------------------------------------------------
# Feedback
# ---------------------------------------------------------------------------

class FeedbackCreate(BaseModel):
    avatar: str = Field(..., min_length=1, max_length=512)
    first_name: str = Field(..., min_length=1, max_length=128)
    rating: int = Field(..., ge=1, le=5)
    thoughts: str = Field(..., min_length=1, max_length=5000)
    suggestions: str = Field(..., min_length=1, max_length=5000)


class FeedbackRead(FeedbackCreate):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: Optional[int] = None
    created_at: dt.datetime


class FeedbackPage(BaseModel):
    items: List[FeedbackRead]
    total: int
    limit: int
    offset: int
