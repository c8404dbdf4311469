from __future__ import annotations

import datetime as dt
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select

from ..auth.dependencies import require_admin, require_any
from ..database import db_session
from ..models import Event, User
from ..schemas import EventCreate, EventRead, EventUpdate

logger = logging.getLogger("exhibit.events")

router = APIRouter(prefix="/events", tags=["events"])


def _get_or_404(session, event_id: int) -> Event:
    event = session.get(Event, event_id)
    if not event:
        raise HTTPException(status_code=404, detail="Event not found")
    return event


@router.get("", response_model=List[EventRead])
def list_events(
    upcoming: bool = Query(False, description="Only events dated today or later."),
    limit: int = Query(100, ge=1, le=500),
    _user: User = Depends(require_any),
) -> List[EventRead]:
    with db_session() as session:
        stmt = select(Event).order_by(Event.date.asc(), Event.id.asc()).limit(limit)
        if upcoming:
            stmt = stmt.where(Event.date >= dt.date.today())
        events = session.execute(stmt).scalars().all()
        return [EventRead.model_validate(e) for e in events]


@router.get("/{event_id}", response_model=EventRead)
def get_event(event_id: int, _user: User = Depends(require_any)) -> EventRead:
    with db_session() as session:
        return EventRead.model_validate(_get_or_404(session, event_id))


@router.post("", response_model=EventRead, status_code=201)
def create_event(body: EventCreate, admin: User = Depends(require_admin)) -> EventRead:
    with db_session() as session:
        event = Event(**body.model_dump(), created_by=admin.email)
        session.add(event)
        session.flush()
        session.refresh(event)
        logger.info("Event %s created by %s", event.id, admin.id)
        return EventRead.model_validate(event)


@router.put("/{event_id}", response_model=EventRead)
def update_event(
    event_id: int,
    body: EventUpdate,
    admin: User = Depends(require_admin),
) -> EventRead:
    changes = body.model_dump(exclude_unset=True)
    nulled = [k for k in ("title", "location", "date", "description", "attendees") if k in changes and changes[k] is None]
    if nulled:
        raise HTTPException(status_code=422, detail=f"Fields cannot be null: {', '.join(nulled)}")
    with db_session() as session:
        event = _get_or_404(session, event_id)
        for field, value in changes.items():
            setattr(event, field, value)
        session.flush()
        session.refresh(event)
        return EventRead.model_validate(event)


@router.delete("/{event_id}", status_code=204)
def delete_event(event_id: int, admin: User = Depends(require_admin)) -> None:
    with db_session() as session:
        event = _get_or_404(session, event_id)
        session.delete(event)
    logger.info("Event %s deleted by %s", event_id, admin.id)
