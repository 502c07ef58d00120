"""
Background Jobs Module

Handles scheduled tasks for:
- Developer auto-disbursement requests
- Retrying deferred revenue shares
"""

from revshare.jobs.scheduler import scheduler, start_scheduler, shutdown_scheduler
from revshare.jobs.developer_auto_disbursement import run_developer_auto_disbursement
from revshare.jobs.ledger_jobs import run_retry_deferred

__all__ = [
    "scheduler",
    "start_scheduler",
    "shutdown_scheduler",
    "run_developer_auto_disbursement",
    "run_retry_deferred",
]
