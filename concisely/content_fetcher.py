# concisely/content_fetcher.py
"""
Turns search results into stored summaries for one user.

Duplicate policy, per item (URLs compared in normalized form):
  - the user already has it (owns or saved)   -> "duplicate", skipped
  - another user already summarized it        -> "reused", linked to this user
  - nobody has it                             -> extract + summarize -> "created"
  - anything fails along the way              -> "failed", batch continues
"""
from __future__ import annotations

import math
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, or_, select

from .errors import AlreadyExistsError, ValidationFailed
from .llm import detect_topics, summarize_content
from .logging_setup import get_logger
from .models import Summary, User, utcnow
from .sources import ContentItem, normalize_url, search_content_by_topic
from .store import get_session
from .text_extraction import (
    MAX_STORED_CHARS,
    MIN_CONTENT_CHARS,
    ExtractionError,
    extract_content,
    fetch_and_extract,
    get_transcript_text,
    get_video_info,
)

logger = get_logger("concisely.content_fetcher")

CREATED, REUSED, DUPLICATE, FAILED = "created", "reused", "duplicate", "failed"


@dataclass
class ProcessResult:
    status: str
    summary: Optional[Summary] = None

    @property
    def success(self) -> bool:
        return self.status in (CREATED, REUSED)


@dataclass
class FetchResult:
    success: bool
    message: str
    summaries: List[Dict[str, Any]] = field(default_factory=list)
    failed_items: List[str] = field(default_factory=list)
    duplicates: List[str] = field(default_factory=list)

    @property
    def summary_ids(self) -> List[int]:
        return [s["id"] for s in self.summaries]


# ---------- lookups ----------

def find_user_summary(session: Session, user: User, url: str) -> Optional[Summary]:
    """A summary of ``url`` the user owns or has saved."""
    key = normalize_url(url)
    stmt = select(Summary).where(Summary.source_url == key)
    if user.saved_summary_ids:
        stmt = stmt.where(or_(Summary.user_id == user.id, Summary.id.in_(user.saved_summary_ids)))
    else:
        stmt = stmt.where(Summary.user_id == user.id)
    return session.exec(stmt).first()


def find_any_summary(session: Session, url: str) -> Optional[Summary]:
    key = normalize_url(url)
    return session.exec(
        select(Summary).where(Summary.source_url == key).order_by(Summary.created_at)
    ).first()


def save_for_user(session: Session, user: User, summary_id: int) -> bool:
    """Add to the user's saved list; False if it was already there."""
    if summary_id in user.saved_summary_ids:
        return False
    user.saved_summary_ids = [*user.saved_summary_ids, summary_id]
    user.updated_at = utcnow()
    session.add(user)
    return True


# ---------- one item ----------

def process_content_item(session: Session, user: User, item: ContentItem) -> ProcessResult:
    key = normalize_url(item.url)
    ctx = {"user_id": user.id, "url": item.url, "source_type": item.source_type}
    if not key:
        logger.warning("ITEM_WITHOUT_URL", extra={**ctx, "title": item.title[:120]})
        return ProcessResult(FAILED)

    try:
        if find_user_summary(session, user, key):
            logger.debug("DEDUP_USER_HISTORY", extra=ctx)
            return ProcessResult(DUPLICATE)

        existing = find_any_summary(session, key)
        if existing:
            save_for_user(session, user, existing.id)
            session.commit()
            session.refresh(existing)
            logger.info("DEDUP_REUSED", extra={**ctx, "summary_id": existing.id})
            return ProcessResult(REUSED, existing)

        content = extract_content(item.url, item.source_type, fallback=item.snippet)
        if not content or len(content.strip()) < MIN_CONTENT_CHARS:
            logger.warning("INSUFFICIENT_CONTENT", extra={**ctx, "chars": len(content or "")})
            return ProcessResult(FAILED)

        summary_text = summarize_content(content, user.summary_length, item.source_type)
        if not summary_text:
            logger.warning("EMPTY_SUMMARY", extra=ctx)
            return ProcessResult(FAILED)

        summary = Summary(
            user_id=user.id,
            title=item.title or key,
            original_content=content[:MAX_STORED_CHARS],
            summary=summary_text,
            source_url=key,
            source_type=item.source_type,
            topics=detect_topics(content),
        )
        session.add(summary)
        session.commit()
        session.refresh(summary)

        save_for_user(session, user, summary.id)
        session.commit()
        session.refresh(summary)
        logger.info("SUMMARY_CREATED", extra={**ctx, "summary_id": summary.id})
        return ProcessResult(CREATED, summary)

    except IntegrityError:
        # another run stored this URL for the user first
        session.rollback()
        logger.info("DEDUP_RACE", extra=ctx)
        return ProcessResult(DUPLICATE)
    except Exception as e:
        session.rollback()
        logger.exception("PROCESS_ITEM_FAILED", extra={**ctx, "handled": True, "error": type(e).__name__})
        return ProcessResult(FAILED)


# ---------- one user ----------

def fetch_and_process_content_for_user(user_id: int) -> FetchResult:
    """
    Search every topic of the user inside their delivery window and turn the
    hits into summaries. At most ``max_items_per_newsletter`` summaries come
    back; duplicates and failures are reported by URL.
    """
    t0 = time.perf_counter()
    with get_session() as s:
        user = s.get(User, user_id)
        if not user or not user.topics:
            return FetchResult(False, "No topics found for user")

        topics = list(user.topics)
        frequency = user.delivery_frequency
        limit = max(1, user.max_items_per_newsletter)
        per_topic = math.ceil(limit / len(topics))

        processed: List[Dict[str, Any]] = []
        failed: List[str] = []
        duplicates: List[str] = []
        seen: set[str] = set()

        for topic in topics:
            if len(processed) >= limit:
                break
            try:
                items = search_content_by_topic(topic, per_topic, frequency)
            except Exception as e:
                logger.exception(
                    "TOPIC_SEARCH_FAILED",
                    extra={"handled": True, "user_id": user_id, "topic": topic, "error": type(e).__name__},
                )
                continue

            for item in items:
                if len(processed) >= limit:
                    break
                key = normalize_url(item.url)
                if key in seen:
                    duplicates.append(item.url)
                    continue
                seen.add(key)

                result = process_content_item(s, user, item)
                if result.success:
                    processed.append(result.summary.model_dump())
                elif result.status == DUPLICATE:
                    duplicates.append(item.url)
                else:
                    failed.append(item.url)

    logger.info(
        "USER_FETCH_DONE",
        extra={
            "user_id": user_id,
            "processed": len(processed),
            "failed": len(failed),
            "duplicates": len(duplicates),
            "elapsed_ms": round((time.perf_counter() - t0) * 1000),
        },
    )

    if not processed:
        return FetchResult(False, "No new content could be processed", [], failed, duplicates)
    return FetchResult(True, f"Successfully processed {len(processed)} items", processed, failed, duplicates)


# ---------- manual submissions ----------

def summarize_url_for_user(
    session: Session,
    user: User,
    url: str,
    source_type: str,
    title: Optional[str] = None,
    topics: Optional[List[str]] = None,
) -> Summary:
    """
    Summarize a URL the user submitted directly. Unlike the pipeline this
    raises: the caller wants to know why nothing was created.
    """
    key = normalize_url(url)
    if not key:
        raise ValidationFailed("A URL is required")
    if find_user_summary(session, user, key):
        raise AlreadyExistsError("You already have a summary for this URL")

    if source_type in ("youtube", "podcast"):
        content = get_transcript_text(url)
        if not title and source_type == "youtube":
            try:
                title = get_video_info(url)["title"]
            except ExtractionError:
                title = None
    else:
        content, title_guess = fetch_and_extract(url)
        title = title or title_guess

    if len(content.strip()) < MIN_CONTENT_CHARS:
        raise ExtractionError("Could not extract enough content from the URL")

    summary = Summary(
        user_id=user.id,
        title=title or f"{source_type.capitalize()} Summary",
        original_content=content[:MAX_STORED_CHARS],
        summary=summarize_content(content, "long", source_type),
        source_url=key,
        source_type=source_type,
        topics=topics or detect_topics(content),
    )
    session.add(summary)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise AlreadyExistsError("You already have a summary for this URL")
    session.refresh(summary)
    save_for_user(session, user, summary.id)
    session.commit()
    session.refresh(summary)
    logger.info("MANUAL_SUMMARY_CREATED", extra={"user_id": user.id, "summary_id": summary.id, "source_type": source_type})
    return summary
