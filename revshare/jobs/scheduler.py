"""
APScheduler Configuration

Background jobs:
- Monthly developer auto-disbursement request
- Retry of revenue shares deferred by a configuration error
"""

import logging
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.executors.asyncio import AsyncIOExecutor

from revshare.config import settings

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
    'misfire_grace_time': 300,
}

# Create scheduler
scheduler = AsyncIOScheduler(
    jobstores=jobstores,
    executors=executors,
    job_defaults=job_defaults,
    timezone=settings.SCHEDULER_TIMEZONE
)


def start_scheduler():
    """Start the background job scheduler."""
    if not scheduler.running:
        from revshare.jobs.developer_auto_disbursement import developer_auto_disbursement_job
        from revshare.jobs.ledger_jobs import retry_deferred_job

        # Daily; the job itself checks the day of month in local time
        scheduler.add_job(
            developer_auto_disbursement_job,
            'cron',
            hour=settings.DEVELOPER_AUTO_DISBURSEMENT_HOUR,
            minute=settings.DEVELOPER_AUTO_DISBURSEMENT_MINUTE,
            id='developer_auto_disbursement',
            name='Developer Auto-Disbursement',
            replace_existing=True,
        )

        # Pick up deferred transactions once the settings have been fixed
        scheduler.add_job(
            retry_deferred_job,
            'interval',
            minutes=15,
            id='retry_deferred_revenue_shares',
            name='Retry Deferred Revenue Shares',
            replace_existing=True,
        )

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
            'next_run_time': str(job.next_run_time) if job.next_run_time else None,
            'trigger': str(job.trigger),
        }
        for job in jobs
    ]
