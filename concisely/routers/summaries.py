# concisely/routers/summaries.py
from typing import Literal

from fastapi import APIRouter, Depends, Query, status
from sqlmodel import Session, select

from ..content_fetcher import summarize_url_for_user
from ..errors import NotFoundError
from ..logging_setup import get_logger
from ..models import Summary, User, utcnow
from ..responses import success
from ..schema import RatingIn, SummaryIn
from .deps import db_session, require_api_key

logger = get_logger("concisely.routes.summaries")

router = APIRouter(prefix="/api/summaries", tags=["Summaries"], dependencies=[Depends(require_api_key)])


def _get_summary(s: Session, summary_id: int) -> Summary:
    summary = s.get(Summary, summary_id)
    if not summary:
        raise NotFoundError("Summary not found")
    return summary


@router.post("/{source_type}", status_code=status.HTTP_201_CREATED)
def create_summary(
    source_type: Literal["youtube", "article", "podcast"],
    body: SummaryIn,
    s: Session = Depends(db_session),
):
    """Summarize a single URL on demand (transcript for youtube/podcast, page text for articles)."""
    user = s.get(User, body.user_id)
    if not user:
        raise NotFoundError("User not found")
    logger.info(f"Manual {source_type} summary requested by user={user.id}")
    summary = summarize_url_for_user(s, user, body.url, source_type, title=body.title, topics=body.topics)
    return success(summary, "Summary created")


@router.get("")
def list_summaries(user_id: int = Query(...), s: Session = Depends(db_session)):
    rows = s.exec(
        select(Summary).where(Summary.user_id == user_id).order_by(Summary.created_at.desc())
    ).all()
    return success(rows)


@router.get("/{summary_id}")
def get_summary(summary_id: int, s: Session = Depends(db_session)):
    return success(_get_summary(s, summary_id))


@router.delete("/{summary_id}")
def delete_summary(summary_id: int, s: Session = Depends(db_session)):
    summary = _get_summary(s, summary_id)
    # drop dangling references from saved lists
    for user in s.exec(select(User)).all():
        if summary_id in (user.saved_summary_ids or []):
            user.saved_summary_ids = [i for i in user.saved_summary_ids if i != summary_id]
            s.add(user)
    s.delete(summary); s.commit()
    logger.info(f"Summary deleted: id={summary_id}")
    return success({}, "Summary removed")


@router.post("/{summary_id}/rate")
def rate_summary(summary_id: int, body: RatingIn, s: Session = Depends(db_session)):
    summary = _get_summary(s, summary_id)
    if body.rating == "helpful":
        summary.helpful += 1
    else:
        summary.not_helpful += 1
    summary.updated_at = utcnow()
    s.add(summary); s.commit(); s.refresh(summary)
    logger.info(f"Summary rated: id={summary_id} rating={body.rating}")
    return success(summary, "Rating submitted successfully")
