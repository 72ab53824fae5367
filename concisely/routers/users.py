# concisely/routers/users.py

from fastapi import APIRouter, Depends, status
from sqlmodel import Session, select

from ..content_fetcher import find_user_summary, save_for_user
from ..errors import AlreadyExistsError, NotFoundError
from ..logging_setup import get_logger
from ..models import Newsletter, Summary, User, utcnow
from ..responses import success
from ..schema import PreferencesIn, UserIn
from .deps import db_session, require_api_key

logger = get_logger("concisely.routes.users")

router = APIRouter(prefix="/api/users", tags=["Users"], dependencies=[Depends(require_api_key)])


def _get_user(s: Session, user_id: int) -> User:
    user = s.get(User, user_id)
    if not user:
        raise NotFoundError("User not found")
    return user


@router.post("", status_code=status.HTTP_201_CREATED)
def create_user(body: UserIn, s: Session = Depends(db_session)):
    email = body.email.strip().lower()
    if s.exec(select(User).where(User.email == email)).first():
        raise AlreadyExistsError("User already exists")
    user = User(**body.model_dump(exclude={"email"}), email=email)
    s.add(user); s.commit(); s.refresh(user)
    logger.info(f"User created: id={user.id}")
    return success(user, "User created")


@router.get("")
def list_users(s: Session = Depends(db_session)):
    return success(s.exec(select(User).order_by(User.id)).all())


@router.get("/{user_id}")
def get_user(user_id: int, s: Session = Depends(db_session)):
    return success(_get_user(s, user_id))


@router.put("/{user_id}/preferences")
def update_preferences(user_id: int, body: PreferencesIn, s: Session = Depends(db_session)):
    user = _get_user(s, user_id)
    changes = body.model_dump(exclude_none=True)
    if "topics" in changes:
        # trimmed, de-duplicated, order kept
        changes["topics"] = list(dict.fromkeys(t.strip() for t in changes["topics"] if t.strip()))
    for field, value in changes.items():
        setattr(user, field, value)
    user.updated_at = utcnow()
    s.add(user); s.commit(); s.refresh(user)
    logger.info(f"Preferences updated: user={user_id} fields={sorted(changes)}")
    return success(user, "Preferences updated")


@router.delete("/{user_id}")
def delete_user(user_id: int, s: Session = Depends(db_session)):
    user = _get_user(s, user_id)
    # summaries another user saved stay behind for them
    shared = {sid for other in s.exec(select(User).where(User.id != user_id)).all() for sid in other.saved_summary_ids or []}
    owned = s.exec(select(Summary).where(Summary.user_id == user_id)).all()
    dropped = [row for row in owned if row.id not in shared]
    for row in dropped:
        s.delete(row)
    for newsletter in s.exec(select(Newsletter).where(Newsletter.owner_id == user_id)).all():
        s.delete(newsletter)
    s.delete(user); s.commit()
    logger.info(f"User deleted: id={user_id} summaries_removed={len(dropped)}")
    return success({}, "User removed")


@router.get("/{user_id}/saved-summaries")
def list_saved_summaries(user_id: int, s: Session = Depends(db_session)):
    user = _get_user(s, user_id)
    if not user.saved_summary_ids:
        return success([])
    rows = s.exec(select(Summary).where(Summary.id.in_(user.saved_summary_ids))).all()
    return success(sorted(rows, key=lambda r: r.created_at, reverse=True))


@router.post("/{user_id}/saved-summaries/{summary_id}")
def save_summary(user_id: int, summary_id: int, s: Session = Depends(db_session)):
    user = _get_user(s, user_id)
    summary = s.get(Summary, summary_id)
    if not summary:
        raise NotFoundError("Summary not found")
    already = find_user_summary(s, user, summary.source_url)
    if already and already.id != summary_id:
        raise AlreadyExistsError("You already have a summary for this URL")
    added = save_for_user(s, user, summary_id)
    s.commit(); s.refresh(user)
    return success(user.saved_summary_ids, "Summary saved" if added else "Summary already saved")


@router.delete("/{user_id}/saved-summaries/{summary_id}")
def unsave_summary(user_id: int, summary_id: int, s: Session = Depends(db_session)):
    user = _get_user(s, user_id)
    if summary_id not in user.saved_summary_ids:
        raise NotFoundError("Summary not in saved list")
    user.saved_summary_ids = [i for i in user.saved_summary_ids if i != summary_id]
    user.updated_at = utcnow()
    s.add(user); s.commit(); s.refresh(user)
    return success(user.saved_summary_ids, "Summary removed from saved list")
