# concisely/emailer.py
from dataclasses import dataclass
from typing import Iterable, List, Optional
import os
import smtplib, ssl
from email.message import EmailMessage

import requests
from bs4 import BeautifulSoup
from jinja2 import Template
from sqlmodel import select

from . import config
from .errors import InvalidStatusTransition, SendInProgress
from .logging_setup import get_logger
from .models import Newsletter, User, utcnow
from .newsletters import ALLOWED_TRANSITIONS, claim_for_sending, get_newsletter, release_claim, transition
from .store import get_session

logger = get_logger("concisely.emailer")

NEWSLETTER_TPL = Template("""<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <title>{{ title }}</title>
  <style>
    body { font-family: Arial, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px; }
    h1 { color: #444; border-bottom: 1px solid #ddd; padding-bottom: 10px; }
    h2 { color: #555; margin-top: 25px; }
    .topics { margin-bottom: 15px; color: #666; font-style: italic; }
    .content p { margin: 15px 0; }
    .footer { margin-top: 30px; font-size: 12px; color: #999; border-top: 1px solid #ddd; padding-top: 10px; }
  </style>
</head>
<body>
  <h1>{{ title }}</h1>
  {% if topics %}<div class="topics">Topics: {{ topics|join(", ") }}</div>{% endif %}
  <div class="content">
    {{ content|safe }}
  </div>
  <div class="footer">
    <p>You received this newsletter because you subscribed to these topics.</p>
    {% if user_id %}
    <p><a href="{{ app_url }}/unsubscribe/{{ user_id }}">Unsubscribe</a> | <a href="{{ app_url }}/preferences/{{ user_id }}">Update preferences</a></p>
    {% endif %}
  </div>
</body>
</html>
""", autoescape=True)


@dataclass
class SendResult:
    success: bool
    sent_count: int = 0
    failed_count: int = 0


def _send_mode() -> str:
    # read per call so tests and ops can flip it without a restart
    default = "sendgrid" if config.SENDGRID_API_KEY else "smtp" if config.SMTP_HOST else "console"
    return os.getenv("SEND_MODE", default).lower()


def render_newsletter_html(newsletter: Newsletter, user: Optional[User] = None) -> str:
    return NEWSLETTER_TPL.render(
        title=newsletter.title,
        topics=newsletter.topics or [],
        content=newsletter.content,
        user_id=user.id if user else None,
        app_url=config.APP_URL.rstrip("/"),
    )


def _html_to_text(html: str) -> str:
    return BeautifulSoup(html, "html.parser").get_text("\n", strip=True)


def send_email(
    subject: str,
    html: str,
    to: Optional[Iterable[str]] = None,
    reply_to: Optional[str] = None,
) -> bool:
    """
    Deliver one HTML email through the SEND_MODE backend (console | sendgrid | smtp).
    Never raises: transport errors are logged and reported as False.
    """
    recipients = [r for r in (to or []) if r]
    if not recipients:
        logger.warning("EMAIL_NO_RECIPIENTS", extra={"subject": subject})
        return False

    mode = _send_mode()
    try:
        if mode == "sendgrid":
            _send_via_sendgrid(subject, html, recipients, reply_to)
        elif mode == "smtp":
            _send_via_smtp(subject, html, recipients, reply_to)
        else:
            if mode != "console":
                logger.warning(f"Unknown SEND_MODE={mode!r}; using console.")
                mode = "console"
            _send_console(subject, html, recipients, reply_to)
    except Exception as e:
        logger.exception("EMAIL_SEND_FAILED", extra={"handled": True, "mode": mode, "error": type(e).__name__})
        return False

    logger.info("EMAIL_SENT", extra={"mode": mode, "recipients": len(recipients), "subject": subject})
    return True


def _build_message(subject: str, html: str, recipients: List[str], reply_to: Optional[str]) -> EmailMessage:
    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = config.EMAIL_FROM
    msg["To"] = ", ".join(recipients)
    if reply_to:
        msg["Reply-To"] = reply_to
    msg.set_content(_html_to_text(html))
    msg.add_alternative(html, subtype="html")
    return msg


def _send_console(subject: str, html: str, recipients: List[str], reply_to: Optional[str] = None) -> None:
    preview = html if len(html) < 1200 else html[:1200] + "…"
    logger.info(f"[EMAIL console]\nTo: {', '.join(recipients)}\nSubject: {subject}\n---\n{preview}\n---")


SENDGRID_URL = "https://api.sendgrid.com/v3/mail/send"


def _send_via_sendgrid(subject: str, html: str, recipients: List[str], reply_to: Optional[str] = None) -> None:
    if not config.SENDGRID_API_KEY:
        raise RuntimeError("SENDGRID_API_KEY missing while SEND_MODE=sendgrid")
    body = {
        "personalizations": [{"to": [{"email": r} for r in recipients]}],
        "from": {"email": config.EMAIL_FROM},
        "subject": subject,
        "content": [
            {"type": "text/plain", "value": _html_to_text(html)},
            {"type": "text/html", "value": html},
        ],
        **({"reply_to": {"email": reply_to}} if reply_to else {}),
    }
    r = requests.post(
        SENDGRID_URL,
        json=body,
        headers={"Authorization": f"Bearer {config.SENDGRID_API_KEY}"},
        timeout=config.REQUESTS_TIMEOUT,
    )
    if not r.ok:
        raise RuntimeError(f"SendGrid answered {r.status_code}: {r.text[:300]}")


def _smtp_connection() -> smtplib.SMTP:
    ctx = ssl.create_default_context()
    if config.SMTP_PORT == 465:
        return smtplib.SMTP_SSL(config.SMTP_HOST, config.SMTP_PORT, timeout=config.REQUESTS_TIMEOUT, context=ctx)
    server = smtplib.SMTP(config.SMTP_HOST, config.SMTP_PORT, timeout=config.REQUESTS_TIMEOUT)
    try:
        server.ehlo()
        if server.has_extn("starttls"):
            server.starttls(context=ctx)
            server.ehlo()
    except smtplib.SMTPException:
        server.close()
        raise
    return server


def _send_via_smtp(subject: str, html: str, recipients: List[str], reply_to: Optional[str] = None) -> None:
    if not config.SMTP_HOST:
        raise RuntimeError("SMTP_HOST missing while SEND_MODE=smtp")
    msg = _build_message(subject, html, recipients, reply_to)
    with _smtp_connection() as server:
        if config.SMTP_USER:
            server.login(config.SMTP_USER, config.SMTP_PASS)
        server.send_message(msg, to_addrs=recipients)


# ---------- Newsletter delivery ----------

def send_newsletter_to_user(newsletter: Newsletter, user: User) -> bool:
    html = render_newsletter_html(newsletter, user)
    return send_email(newsletter.title, html, to=[user.email])


def newsletter_recipients(session, newsletter: Newsletter) -> List[User]:
    """The owner for pipeline issues, otherwise everyone sharing a topic."""
    if newsletter.owner_id is not None:
        owner = session.get(User, newsletter.owner_id)
        return [owner] if owner else []
    wanted = {t.lower() for t in newsletter.topics or []}
    users = session.exec(select(User)).all()
    return [u for u in users if wanted & {t.lower() for t in u.topics or []}]


def send_newsletter(newsletter_id: int) -> SendResult:
    """
    Email the newsletter to its recipients and record the outcome:
    ``sent`` if at least one email went out, else ``failed``. Without any
    recipients nothing changes. Raises SendInProgress when another sender
    holds the delivery lease.
    """
    with get_session() as s:
        newsletter = get_newsletter(s, newsletter_id)
        if "sent" not in ALLOWED_TRANSITIONS.get(newsletter.status, set()):
            raise InvalidStatusTransition(newsletter.status, "sent")

        users = newsletter_recipients(s, newsletter)
        if not users:
            logger.warning("NEWSLETTER_NO_RECIPIENTS", extra={"newsletter_id": newsletter_id})
            return SendResult(False, 0, 0)

        if not claim_for_sending(s, newsletter_id):
            raise SendInProgress(newsletter_id)
        s.refresh(newsletter)

        delivered: List[int] = []
        failed_count = 0
        try:
            for user in users:
                if send_newsletter_to_user(newsletter, user):
                    delivered.append(user.id)
                else:
                    failed_count += 1
        except Exception:
            release_claim(s, newsletter)
            s.commit()
            raise

        if delivered:
            transition(newsletter, "sent")
            newsletter.sent_at = utcnow()
            newsletter.sent_to = delivered
        else:
            transition(newsletter, "failed")
        release_claim(s, newsletter)
        s.commit()

        logger.info(
            "NEWSLETTER_SENT" if delivered else "NEWSLETTER_SEND_FAILED",
            extra={"newsletter_id": newsletter_id, "sent": len(delivered), "failed": failed_count},
        )
        return SendResult(bool(delivered), len(delivered), failed_count)
