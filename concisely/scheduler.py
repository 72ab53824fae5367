# concisely/scheduler.py
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger
from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED
import pytz

from .config import TIMEZONE, DAILY_HOUR, WEEKLY_HOUR, MONTHLY_HOUR, DISPATCH_INTERVAL_MINUTES
from .workflow import process_frequency_group, dispatch_due_newsletters
from .logging_setup import get_logger

logger = get_logger("concisely.scheduler")
scheduler = BackgroundScheduler()

def _job_listener(event):
    if event.exception:
        logger.error(
            "JOB_ERROR",
            exc_info=event.exception,
            extra={"handled": False, "job_id": event.job_id, "run_time": str(event.scheduled_run_time)},
        )
    else:
        logger.info(
            "JOB_OK",
            extra={"job_id": event.job_id, "run_time": str(event.scheduled_run_time)},
        )

def add_jobs():
    tz = pytz.timezone(TIMEZONE)
    scheduler.add_job(
        process_frequency_group, CronTrigger(hour=DAILY_HOUR, minute=0, timezone=tz),
        args=["daily"], id="content_daily", replace_existing=True,
    )
    scheduler.add_job(
        process_frequency_group, CronTrigger(day_of_week="mon", hour=WEEKLY_HOUR, minute=0, timezone=tz),
        args=["weekly"], id="content_weekly", replace_existing=True,
    )
    scheduler.add_job(
        process_frequency_group, CronTrigger(day=1, hour=MONTHLY_HOUR, minute=0, timezone=tz),
        args=["monthly"], id="content_monthly", replace_existing=True,
    )
    scheduler.add_job(
        dispatch_due_newsletters, IntervalTrigger(minutes=DISPATCH_INTERVAL_MINUTES, timezone=tz),
        id="newsletter_dispatch", replace_existing=True, max_instances=1, coalesce=True,
    )
    scheduler.add_listener(_job_listener, EVENT_JOB_EXECUTED | EVENT_JOB_ERROR)
    logger.info(
        f"Jobs registered: daily {DAILY_HOUR:02d}:00, weekly Mon {WEEKLY_HOUR:02d}:00, "
        f"monthly 1st {MONTHLY_HOUR:02d}:00, dispatch every {DISPATCH_INTERVAL_MINUTES} min ({TIMEZONE})"
    )

def start_scheduler():
    if not scheduler.running:
        scheduler.start()
        logger.info("APScheduler started")

def shutdown_scheduler(wait: bool = False):
    if scheduler.running:
        scheduler.shutdown(wait=wait)
        logger.info("APScheduler stopped")
