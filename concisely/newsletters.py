# concisely/newsletters.py
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional

from jinja2 import Template
from sqlmodel import Session, or_, select, update

from .errors import InvalidStatusTransition, NotFoundError, ValidationFailed
from .llm import generate_newsletter
from .logging_setup import get_logger
from .models import Newsletter, Summary, utcnow

logger = get_logger("concisely.newsletters")

# draft -> scheduled -> sent | failed; failed may be rescheduled; sent is final
ALLOWED_TRANSITIONS = {
    "draft": {"scheduled", "sent", "failed"},
    "scheduled": {"scheduled", "sent", "failed"},
    "failed": {"scheduled"},
    "sent": set(),
}

DIGEST_TPL = Template("""
<p>Here is what happened in {{ topics|join(", ") }}.</p>
{% for s in summaries %}
<h2><a href="{{ s.url }}">{{ s.title }}</a></h2>
<p>{{ s.summary }}</p>
{% endfor %}
""".strip(), autoescape=True)


def transition(newsletter: Newsletter, target: str) -> Newsletter:
    current = newsletter.status
    if target not in ALLOWED_TRANSITIONS.get(current, set()):
        raise InvalidStatusTransition(current, target)
    newsletter.status = target
    newsletter.updated_at = utcnow()
    return newsletter


def _field(summary: Any, name: str) -> str:
    # Summary rows and their model_dump() dicts are both accepted
    value = summary.get(name) if isinstance(summary, dict) else getattr(summary, name, "")
    return value or ""


def _as_entries(summaries: Iterable[Any]) -> List[Dict[str, str]]:
    return [
        {"title": _field(s, "title"), "url": _field(s, "source_url"), "summary": _field(s, "summary")}
        for s in summaries
    ]


def generate_newsletter_content(summaries: Iterable[Any], topics: List[str]) -> str:
    """LLM-written body; a plain digest of the summaries when the LLM is unavailable."""
    entries = _as_entries(summaries)
    html = generate_newsletter(entries, topics)
    if html:
        return html
    logger.info("NEWSLETTER_FALLBACK_DIGEST", extra={"items": len(entries)})
    return DIGEST_TPL.render(summaries=entries, topics=topics or ["your topics"])


def create_newsletter(
    session: Session,
    title: str,
    topics: List[str],
    summary_ids: List[int],
    *,
    owner_id: Optional[int] = None,
    status: str = "draft",
    scheduled_date: Optional[datetime] = None,
) -> Newsletter:
    summaries = session.exec(select(Summary).where(Summary.id.in_(summary_ids))).all() if summary_ids else []
    if not summaries:
        raise ValidationFailed("No valid summaries found")

    # keep the caller's ordering
    order = {sid: i for i, sid in enumerate(summary_ids)}
    summaries = sorted(summaries, key=lambda s: order.get(s.id, len(order)))

    newsletter = Newsletter(
        owner_id=owner_id,
        title=title,
        content=generate_newsletter_content(summaries, topics),
        topics=list(topics),
        summary_ids=[s.id for s in summaries],
        status=status,
        scheduled_date=scheduled_date,
    )
    session.add(newsletter)
    session.commit()
    session.refresh(newsletter)
    logger.info("NEWSLETTER_CREATED", extra={"newsletter_id": newsletter.id, "status": status, "items": len(summaries)})
    return newsletter


def get_newsletter(session: Session, newsletter_id: int) -> Newsletter:
    newsletter = session.get(Newsletter, newsletter_id)
    if not newsletter:
        raise NotFoundError("Newsletter not found")
    return newsletter


def as_utc(dt: datetime) -> datetime:
    """Naive input is taken to be UTC; aware input is converted."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def schedule_newsletter(session: Session, newsletter_id: int, when: datetime) -> Newsletter:
    """``when`` must lie in the future."""
    when = as_utc(when)
    if when <= utcnow():
        raise ValidationFailed("Scheduled date must be in the future")

    newsletter = get_newsletter(session, newsletter_id)
    transition(newsletter, "scheduled")
    newsletter.scheduled_date = when
    session.add(newsletter)
    session.commit()
    session.refresh(newsletter)
    logger.info("NEWSLETTER_SCHEDULED", extra={"newsletter_id": newsletter.id, "scheduled_date": when.isoformat()})
    return newsletter


# ---------- delivery lease ----------

# a sender that died mid-delivery gives the issue up after this long
SEND_LEASE = timedelta(minutes=30)


def _lease_free(now: datetime):
    return or_(Newsletter.sending_since == None, Newsletter.sending_since < now - SEND_LEASE)  # noqa: E711


def due_newsletters(session: Session, now: Optional[datetime] = None) -> List[Newsletter]:
    now = as_utc(now) if now else utcnow()
    return list(session.exec(
        select(Newsletter)
        .where(Newsletter.status == "scheduled")
        .where(Newsletter.scheduled_date != None)  # noqa: E711
        .where(Newsletter.scheduled_date <= now)
        .where(_lease_free(now))
        .order_by(Newsletter.scheduled_date)
    ).all())


def claim_for_sending(session: Session, newsletter_id: int) -> bool:
    """
    Take the delivery lease in one UPDATE. Only a newsletter that may still
    move to ``sent`` and has no live lease can be claimed; False means another
    sender owns it or it was sent meanwhile.
    """
    now = utcnow()
    sendable = [s for s, targets in ALLOWED_TRANSITIONS.items() if "sent" in targets]
    result = session.execute(
        update(Newsletter)
        .where(Newsletter.id == newsletter_id)
        .where(Newsletter.status.in_(sendable))
        .where(_lease_free(now))
        .values(sending_since=now)
        .execution_options(synchronize_session=False)
    )
    session.commit()
    return result.rowcount == 1


def release_claim(session: Session, newsletter: Newsletter) -> None:
    newsletter.sending_since = None
    session.add(newsletter)
