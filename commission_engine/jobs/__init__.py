"""
Background Jobs Module

Handles scheduled tasks for:
- Monthly downline propagation and earnings refresh
"""

from commission_engine.jobs.scheduler import start_scheduler, shutdown_scheduler, get_job_status
from commission_engine.jobs.downline_jobs import run_monthly_downline

__all__ = [
    "start_scheduler",
    "shutdown_scheduler",
    "get_job_status",
    "run_monthly_downline",
]
