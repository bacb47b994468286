"""Scheduled (cron-triggered) job enqueueing."""

from .scheduler import CronScheduler
from .schedule_types import ScheduleType, ScheduleState, IntervalSchedule, TimeOfDaySchedule, create_schedule

__all__ = [
    'CronScheduler',
    'ScheduleType',
    'ScheduleState',
    'IntervalSchedule',
    'TimeOfDaySchedule',
    'create_schedule',
]
