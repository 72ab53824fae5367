# concisely/routers/newsletters.py
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlmodel import Session, select

from ..emailer import send_newsletter
from ..errors import NotFoundError, ValidationFailed
from ..logging_setup import get_logger
from ..models import Newsletter, Summary, User
from ..newsletters import create_newsletter, get_newsletter, schedule_newsletter
from ..responses import success
from ..schema import NewsletterIn, ScheduleIn
from .deps import db_session, require_api_key

logger = get_logger("concisely.routes.newsletters")

router = APIRouter(prefix="/api/newsletters", tags=["Newsletters"], dependencies=[Depends(require_api_key)])


def _with_summaries(s: Session, newsletter: Newsletter) -> dict:
    data = newsletter.model_dump()
    if newsletter.summary_ids:
        rows = s.exec(select(Summary).where(Summary.id.in_(newsletter.summary_ids))).all()
        by_id = {r.id: r for r in rows}
        data["summaries"] = [by_id[i].model_dump() for i in newsletter.summary_ids if i in by_id]
    else:
        data["summaries"] = []
    return data


@router.post("", status_code=status.HTTP_201_CREATED)
def create(body: NewsletterIn, s: Session = Depends(db_session)):
    newsletter = create_newsletter(s, body.title, body.topics, body.summary_ids)
    return success(newsletter, "Newsletter created successfully")


@router.get("")
def list_newsletters(s: Session = Depends(db_session)):
    rows = s.exec(select(Newsletter).order_by(Newsletter.created_at.desc(), Newsletter.id.desc())).all()
    return success(rows, "Newsletters fetched successfully")


@router.get("/latest")
def latest_for_user(user_id: int = Query(...), s: Session = Depends(db_session)):
    """Most recent sent newsletter for the user; the latest scheduled one if none was sent yet."""
    user = s.get(User, user_id)
    if not user:
        raise NotFoundError("User not found")
    wanted = {t.lower() for t in user.topics or []}

    def relevant(n: Newsletter) -> bool:
        if n.owner_id is not None:
            return n.owner_id == user_id
        return bool(wanted & {t.lower() for t in n.topics or []})

    sent = [n for n in s.exec(select(Newsletter).where(Newsletter.status == "sent")).all()
            if relevant(n) and n.sent_at]
    if sent:
        return success(_with_summaries(s, max(sent, key=lambda n: n.sent_at)))

    scheduled = [n for n in s.exec(select(Newsletter).where(Newsletter.status == "scheduled")).all()
                 if relevant(n) and n.scheduled_date]
    if scheduled:
        return success(_with_summaries(s, max(scheduled, key=lambda n: n.scheduled_date)))

    raise NotFoundError("No newsletters found")


@router.get("/{newsletter_id}")
def get_one(newsletter_id: int, s: Session = Depends(db_session)):
    return success(_with_summaries(s, get_newsletter(s, newsletter_id)))


@router.delete("/{newsletter_id}")
def delete(newsletter_id: int, s: Session = Depends(db_session)):
    newsletter = get_newsletter(s, newsletter_id)
    s.delete(newsletter); s.commit()
    logger.info(f"Newsletter deleted: id={newsletter_id}")
    return success({}, "Newsletter removed")


@router.post("/{newsletter_id}/schedule")
def schedule(newsletter_id: int, body: ScheduleIn, s: Session = Depends(db_session)):
    newsletter = schedule_newsletter(s, newsletter_id, body.scheduled_date)
    return success(newsletter, "Newsletter scheduled successfully")


@router.post("/{newsletter_id}/send")
def send(newsletter_id: int):
    result = send_newsletter(newsletter_id)
    if not result.success:
        if result.sent_count == 0 and result.failed_count == 0:
            raise ValidationFailed("No users found with matching preferences")
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Failed to send newsletter: {result.failed_count} failures",
        )
    return success(
        {"newsletter_id": newsletter_id, "sent_count": result.sent_count, "failed_count": result.failed_count},
        "Newsletter sent successfully",
    )
