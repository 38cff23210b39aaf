"""Scheduler module for running checks on a fixed cadence."""

from .check_scheduler import CheckScheduler
from .job_scheduler import JobScheduler

__all__ = ["CheckScheduler", "JobScheduler"]
