"""Scheduler package for periodic maintenance jobs."""

from src.scheduler.service import SchedulerService

__all__ = ["SchedulerService"]
