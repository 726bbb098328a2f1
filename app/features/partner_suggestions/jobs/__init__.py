"""
Job runners for the partner suggestion batch.
"""

from .daily_batch_job import run_daily_batch_once, start_daily_batch_scheduler

__all__ = ["run_daily_batch_once", "start_daily_batch_scheduler"]
