# concisely/routers/content.py
from dataclasses import asdict

from fastapi import APIRouter, Depends
from sqlmodel import Session

from ..content_fetcher import fetch_and_process_content_for_user
from ..errors import NotFoundError, ValidationFailed
from ..logging_setup import get_logger
from ..models import User
from ..responses import success
from ..schema import UserRef
from ..workflow import trigger_content_and_newsletter_for_user
from .deps import db_session, require_api_key

logger = get_logger("concisely.routes.content")

router = APIRouter(prefix="/api/content", tags=["Content"], dependencies=[Depends(require_api_key)])


def _user_with_topics(s: Session, user_id: int) -> User:
    user = s.get(User, user_id)
    if not user:
        raise NotFoundError("User not found")
    if not user.topics:
        raise ValidationFailed("Please configure your topics of interest first")
    return user


@router.post("/fetch")
def fetch_content(body: UserRef, s: Session = Depends(db_session)):
    """Run discovery + summarization for the user now, without building a newsletter."""
    _user_with_topics(s, body.user_id)
    logger.info(f"Manual content fetch: user={body.user_id}")
    result = fetch_and_process_content_for_user(body.user_id)
    if not result.success:
        raise ValidationFailed(result.message)
    return success(asdict(result), "Content fetched successfully")


@router.post("/newsletter")
def generate_newsletter(body: UserRef, s: Session = Depends(db_session)):
    """Fetch content and email a newsletter to the user now."""
    _user_with_topics(s, body.user_id)
    logger.info(f"Manual newsletter run: user={body.user_id}")
    result = trigger_content_and_newsletter_for_user(body.user_id)
    if not result["success"]:
        raise ValidationFailed(result["message"])
    return success(result, "Content fetched and newsletter generated")
