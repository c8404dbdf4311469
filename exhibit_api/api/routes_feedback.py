from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy import func, select

from ..auth.dependencies import require_admin, require_any
from ..config import settings
from ..database import db_session
from ..models import Feedback, User
from ..rate_limit import limiter
from ..schemas import FeedbackCreate, FeedbackPage, FeedbackRead

router = APIRouter(prefix="/feedback", tags=["feedback"])

LATEST_COUNT = 10


@router.post("", response_model=FeedbackRead, status_code=201)
@limiter.limit(settings.feedback_rate_limit)
def submit_feedback(
    request: Request,
    body: FeedbackCreate,
    current_user: User = Depends(require_any),
) -> FeedbackRead:
    with db_session() as session:
        row = Feedback(user_id=current_user.id, **body.model_dump())
        session.add(row)
        session.flush()
        session.refresh(row)
        return FeedbackRead.model_validate(row)


@router.get("/latest", response_model=List[FeedbackRead])
def latest_feedback() -> List[FeedbackRead]:
    """The most recent entries, for the public exhibit page."""
    with db_session() as session:
        rows = session.execute(
            select(Feedback).order_by(Feedback.created_at.desc(), Feedback.id.desc()).limit(LATEST_COUNT)
        ).scalars().all()
        return [FeedbackRead.model_validate(r) for r in rows]


@router.get("", response_model=FeedbackPage)
def list_feedback(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    min_rating: int = Query(1, ge=1, le=5),
    _admin: User = Depends(require_admin),
) -> FeedbackPage:
    with db_session() as session:
        base = select(Feedback).where(Feedback.rating >= min_rating)
        total = session.execute(
            select(func.count()).select_from(base.subquery())
        ).scalar_one()
        rows = session.execute(
            base.order_by(Feedback.created_at.desc(), Feedback.id.desc()).limit(limit).offset(offset)
        ).scalars().all()
        return FeedbackPage(
            items=[FeedbackRead.model_validate(r) for r in rows],
            total=total,
            limit=limit,
            offset=offset,
        )


@router.delete("/{feedback_id}", status_code=204)
def delete_feedback(feedback_id: int, _admin: User = Depends(require_admin)) -> None:
    with db_session() as session:
        row = session.get(Feedback, feedback_id)
        if not row:
            raise HTTPException(status_code=404, detail="Feedback not found")
        session.delete(row)
