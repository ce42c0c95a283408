from __future__ import annotations
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger
from zoneinfo import ZoneInfo
import structlog

from .config import settings
from .pipeline.orchestrator import open_today, run

_log = structlog.get_logger()
_scheduler: AsyncIOScheduler | None = None

def get_scheduler() -> AsyncIOScheduler:
    global _scheduler
    if _scheduler is None:
        _scheduler = AsyncIOScheduler(timezone=ZoneInfo(settings.local_tz))
    return _scheduler

def schedule_jobs(sched: AsyncIOScheduler | None = None, start: bool = True):
    sched = sched or get_scheduler()
    tz = ZoneInfo(settings.local_tz)
    # Open the day's snapshot row shortly after local midnight
    sched.add_job(
        run_open_day,
        CronTrigger(hour=settings.day_open_hour, minute=settings.day_open_minute, timezone=tz),
        id="metrics_open_day",
        replace_existing=True,
    )
    sched.add_job(
        run_refresh,
        IntervalTrigger(minutes=max(settings.refresh_interval_minutes, 1), timezone=tz),
        id="metrics_refresh",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    if start:
        sched.start()
        _log.info("metrics_scheduler_started", refresh_interval_minutes=settings.refresh_interval_minutes)
    return sched

def shutdown_scheduler():
    global _scheduler
    if _scheduler is not None and _scheduler.running:
        _scheduler.shutdown(wait=False)
    _scheduler = None

def run_open_day():
    created = open_today()
    _log.info("metrics_open_day_job", created=created)
    if created:
        run(trigger="open_day")

def run_refresh():
    run(trigger="schedule")
