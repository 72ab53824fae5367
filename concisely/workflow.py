# concisely/workflow.py
from datetime import datetime
from typing import Any, Dict
import uuid
import time

from sqlmodel import select

from .content_fetcher import fetch_and_process_content_for_user
from .emailer import send_newsletter
from .errors import SendInProgress
from .logging_setup import get_logger, request_id_var
from .models import Newsletter, User, utcnow
from .newsletters import create_newsletter, due_newsletters, transition
from .store import get_session

logger = get_logger("concisely.workflow")


def newsletter_title(frequency: str, when: datetime) -> str:
    return f"Your {frequency.capitalize()} Update - {when.strftime('%Y-%m-%d')}"


def process_user_content(user_id: int, frequency: str) -> Dict[str, Any]:
    """
    One user's run:
    - fetch + summarize new content for their topics
    - assemble a draft newsletter
    - email it to them and record sent/failed
    """
    t0 = time.perf_counter()

    with get_session() as s:
        user = s.get(User, user_id)
        if not user:
            logger.error("USER_NOT_FOUND", extra={"user_id": user_id})
            return {"status": "user_not_found"}
        topics = list(user.topics or [])
        email = user.email

    logger.info("USER_RUN_START", extra={"user_id": user_id, "email": email, "frequency": frequency})

    result = fetch_and_process_content_for_user(user_id)
    if not result.success or not result.summaries:
        logger.warning("USER_NO_CONTENT", extra={"user_id": user_id, "reason": result.message})
        return {"status": "no_content", "message": result.message}

    now = utcnow()
    with get_session() as s:
        newsletter = create_newsletter(
            s,
            newsletter_title(frequency, now),
            topics,
            result.summary_ids,
            owner_id=user_id,
        )
        newsletter_id = newsletter.id

    sent = send_newsletter(newsletter_id)
    status = "sent" if sent.success else "failed"
    logger.info(
        "USER_RUN_DONE",
        extra={
            "user_id": user_id,
            "newsletter_id": newsletter_id,
            "status": status,
            "summaries": len(result.summaries),
            "failed_items": len(result.failed_items),
            "elapsed_ms": round((time.perf_counter() - t0) * 1000),
        },
    )
    return {"status": status, "newsletter_id": newsletter_id, "summaries": len(result.summaries)}


def process_frequency_group(frequency: str) -> Dict[int, str]:
    """Run every user on this delivery frequency; one failing user never stops the rest."""
    run_id = uuid.uuid4().hex[:8]
    token = request_id_var.set(f"{frequency}-{run_id}")
    t0 = time.perf_counter()
    outcome: Dict[int, str] = {}
    try:
        with get_session() as s:
            users = s.exec(select(User).where(User.delivery_frequency == frequency)).all()
            user_ids = [u.id for u in users if u.topics]

        logger.info("GROUP_START", extra={"frequency": frequency, "users": len(user_ids)})

        for user_id in user_ids:
            try:
                outcome[user_id] = process_user_content(user_id, frequency)["status"]
            except Exception as e:
                outcome[user_id] = "error"
                logger.exception(
                    "USER_RUN_FAILED",
                    extra={"handled": True, "user_id": user_id, "error": type(e).__name__},
                )

        logger.info(
            "GROUP_DONE",
            extra={
                "frequency": frequency,
                "outcome": outcome,
                "total_elapsed_ms": round((time.perf_counter() - t0) * 1000),
            },
        )
        return outcome
    finally:
        request_id_var.reset(token)


def trigger_content_and_newsletter_for_user(user_id: int) -> Dict[str, Any]:
    """Manual run for one user, on their own delivery frequency."""
    with get_session() as s:
        user = s.get(User, user_id)
        if not user:
            return {"success": False, "message": "User not found"}
        frequency = user.delivery_frequency or "weekly"

    result = process_user_content(user_id, frequency)
    if result["status"] == "sent":
        return {"success": True, "message": "Content fetched and newsletter sent", **result}
    if result["status"] == "failed":
        return {"success": False, "message": "Newsletter generated but could not be delivered", **result}
    return {"success": False, "message": result.get("message") or "No new content could be processed", **result}


def dispatch_due_newsletters() -> Dict[int, bool]:
    """Send every scheduled newsletter whose time has come."""
    with get_session() as s:
        due_ids = [n.id for n in due_newsletters(s)]

    if due_ids:
        logger.info("DISPATCH_START", extra={"due": len(due_ids)})

    sent: Dict[int, bool] = {}
    for newsletter_id in due_ids:
        try:
            result = send_newsletter(newsletter_id)
        except SendInProgress:
            logger.info("DISPATCH_SKIPPED_IN_PROGRESS", extra={"newsletter_id": newsletter_id})
            continue
        except Exception as e:
            sent[newsletter_id] = False
            logger.exception(
                "DISPATCH_FAILED",
                extra={"handled": True, "newsletter_id": newsletter_id, "error": type(e).__name__},
            )
            _mark_failed(newsletter_id)
            continue

        sent[newsletter_id] = result.success
        if not result.success and not result.failed_count:
            logger.warning("DISPATCH_NO_RECIPIENTS", extra={"newsletter_id": newsletter_id})
            _mark_failed(newsletter_id)
    return sent


def _mark_failed(newsletter_id: int) -> None:
    with get_session() as s:
        newsletter = s.get(Newsletter, newsletter_id)
        if newsletter and newsletter.status == "scheduled":
            transition(newsletter, "failed")
            s.add(newsletter)
            s.commit()
