# concisely/routers/email_admin.py
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends
from pydantic import BaseModel

from ..emailer import send_email
from ..workflow import dispatch_due_newsletters, process_frequency_group
from ..schema import Frequency
from .deps import require_api_key

router = APIRouter(prefix="/admin", tags=["Admin"], dependencies=[Depends(require_api_key)])


class TestEmailIn(BaseModel):
    to: Optional[str] = None


@router.post("/email/send-test", summary="Send a test email with the configured backend")
def send_test_email(bg: BackgroundTasks, body: Optional[TestEmailIn] = None):
    """
    Queues a simple test email (console, SMTP or SendGrid, per SEND_MODE).
    Returns immediately; check the inbox or the logs afterwards.
    """
    to = (body.to if body and body.to else None) or "test@concisely.app"
    bg.add_task(send_email, "Concisely — test", "<p>Hello! This is a test email.</p>", [to])
    return {"queued": True}


@router.post("/run/{frequency}", summary="Run a frequency group now (normally cron-driven)")
def run_group(frequency: Frequency, bg: BackgroundTasks):
    bg.add_task(process_frequency_group, frequency)
    return {"queued": True, "frequency": frequency}


@router.post("/dispatch", summary="Send scheduled newsletters that are due")
def run_dispatch():
    return {"dispatched": dispatch_due_newsletters()}
