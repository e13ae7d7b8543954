"""
Background worker for the periodic scheduling jobs.

Run with ``arq consultbook.worker.WorkerSettings``. Each cron pass opens its
own session, so the jobs never share state with request handlers.
"""

import logging

from arq.connections import RedisSettings
from arq.cron import cron

from consultbook.config import settings
from consultbook.database import SessionLocal
from consultbook.services.expiry_service import make_expiry_job
from consultbook.services.notification_service import DatabaseNotifier
from consultbook.services.reminder_service import make_reminder_job

logger = logging.getLogger(__name__)


def every_n_minutes(step: int) -> set:
    if step <= 0 or step > 60:
        raise ValueError("cron step must be between 1 and 60 minutes")
    return set(range(0, 60, step))


async def startup(ctx):
    ctx.setdefault("session_factory", SessionLocal)
    logger.info("Scheduling worker started")


async def expiry_sweep_task(ctx):
    """Cancel missed pending/confirmed appointments."""
    job = make_expiry_job(
        ctx.get("session_factory", SessionLocal),
        DatabaseNotifier,
        grace_minutes=settings.EXPIRY_GRACE_MINUTES,
    )
    try:
        cancelled = job()
    except Exception as e:
        logger.error("[ExpiryReaper] sweep failed: %s", e)
        raise
    logger.info("[ExpiryReaper] cancelled %s appointments", len(cancelled))
    return {"cancelled": cancelled}


async def reminder_task(ctx):
    """Notify both parties of appointments starting soon."""
    job = make_reminder_job(
        ctx.get("session_factory", SessionLocal),
        DatabaseNotifier,
        lead_minutes=settings.REMINDER_LEAD_MINUTES,
    )
    try:
        reminded = job()
    except Exception as e:
        logger.error("[ReminderJob] pass failed: %s", e)
        raise
    return {"reminded": reminded}


class WorkerSettings:
    """ARQ worker settings"""

    functions = [expiry_sweep_task, reminder_task]
    on_startup = startup
    redis_settings = RedisSettings.from_dsn(settings.REDIS_URL)

    # A pass that overruns is picked up by the next tick
    max_tries = 1
    job_timeout = 120

    cron_jobs = [
        cron(
            expiry_sweep_task,
            minute=every_n_minutes(settings.EXPIRY_SWEEP_EVERY_MINUTES),
            second=0,
            unique=True,
        ),
        cron(
            reminder_task,
            minute=every_n_minutes(settings.REMINDER_EVERY_MINUTES),
            second=30,
            unique=True,
        ),
    ]
