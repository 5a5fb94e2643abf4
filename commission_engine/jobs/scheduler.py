"""
APScheduler Configuration

Registers the monthly downline job. The job logic lives in
``commission_engine.jobs.downline_jobs``.
"""

import logging
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.executors.asyncio import AsyncIOExecutor

from commission_engine.config import settings

logger = logging.getLogger(__name__)

# Job stores
jobstores = {
    'default': MemoryJobStore()
}

# Executors
executors = {
    'default': AsyncIOExecutor(),
}

# Job defaults
job_defaults = {
    'coalesce': True,  # Combine multiple pending executions into one
    'max_instances': 1,  # Only one instance of each job at a time
    'misfire_grace_time': 3600,
}

scheduler = AsyncIOScheduler(
    jobstores=jobstores,
    executors=executors,
    job_defaults=job_defaults,
    timezone=settings.SCHEDULER_TIMEZONE
)


async def run_downline_job():
    """Scheduler entry point for the monthly downline propagation."""
    from commission_engine.jobs.downline_jobs import run_monthly_downline

    try:
        result = await run_monthly_downline()
        logger.info(f"Job 'monthly_downline' finished: {result}")
    except Exception:
        logger.exception("Job 'monthly_downline' failed")


def register_jobs():
    if settings.DOWNLINE_JOB_ENABLED:
        scheduler.add_job(
            run_downline_job,
            'cron',
            day=settings.DOWNLINE_JOB_DAY,
            hour=settings.DOWNLINE_JOB_HOUR,
            minute=0,
            id='monthly_downline',
            name='Monthly Downline Propagation',
            replace_existing=True,
        )


def start_scheduler():
    """Start the background job scheduler."""
    if not scheduler.running:
        register_jobs()
        scheduler.start()
        logger.info("Background job scheduler started")

        for job in scheduler.get_jobs():
            logger.info(f"Scheduled job: {job.name} - Next run: {job.next_run_time}")


def shutdown_scheduler():
    """Shutdown the scheduler gracefully."""
    if scheduler.running:
        scheduler.shutdown(wait=True)
        logger.info("Background job scheduler stopped")


def get_job_status():
    """Get status of all scheduled jobs."""
    jobs = scheduler.get_jobs()
    return [
        {
            'id': job.id,
            'name': job.name,
            'next_run_time': str(job.next_run_time) if getattr(job, 'next_run_time', None) else None,
            'trigger': str(job.trigger),
        }
        for job in jobs
    ]
