"""
Schedule types for the cron trigger.

- INTERVAL: Run every N seconds
- TIME_OF_DAY: Run at specific hours (e.g., 00:00, 12:00)
"""
from enum import Enum
from datetime import datetime, timezone, timedelta
from typing import Dict, Any, Optional, List
from dataclasses import dataclass
import logging

logger = logging.getLogger(__name__)


class ScheduleType(Enum):
    """Types of scheduling strategies"""
    INTERVAL = "interval"
    TIME_OF_DAY = "time_of_day"


@dataclass
class ScheduleState:
    """Runtime state for a scheduled job type"""
    last_run_time: Optional[datetime] = None
    last_job_id: Optional[int] = None


class BaseSchedule:
    """Base class for schedule implementations"""

    def __init__(self, config: Dict[str, Any]):
        self.config = config

    def should_run(self, state: ScheduleState, now: Optional[datetime] = None) -> bool:
        raise NotImplementedError

    def next_run_time(self, state: ScheduleState, now: Optional[datetime] = None) -> Optional[datetime]:
        raise NotImplementedError


class IntervalSchedule(BaseSchedule):
    """
    Run every N seconds.

    Config options:
    - interval_seconds: Seconds between runs
    """

    def __init__(self, config: Dict[str, Any]):
        super().__init__(config)
        self.interval_seconds: int = config.get('interval_seconds', 3600)

    def should_run(self, state: ScheduleState, now: Optional[datetime] = None) -> bool:
        if not state.last_run_time:
            return True
        now = now or datetime.now(timezone.utc)
        return (now - state.last_run_time).total_seconds() >= self.interval_seconds

    def next_run_time(self, state: ScheduleState, now: Optional[datetime] = None) -> Optional[datetime]:
        if not state.last_run_time:
            return now or datetime.now(timezone.utc)
        return state.last_run_time + timedelta(seconds=self.interval_seconds)


class TimeOfDaySchedule(BaseSchedule):
    """
    Run at specific hours of the day (UTC).

    Config options:
    - hours: List of hours to run (0-23), e.g., [0, 12]
    - minute: Minute past the hour (default 0)
    """

    def __init__(self, config: Dict[str, Any]):
        super().__init__(config)
        self.hours: List[int] = sorted(config.get('hours', [0]))
        self.minute: int = config.get('minute', 0)

    def should_run(self, state: ScheduleState, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now(timezone.utc)
        if now.hour not in self.hours or now.minute < self.minute:
            return False
        slot = now.replace(minute=self.minute, second=0, microsecond=0)
        # Once per slot
        return state.last_run_time is None or state.last_run_time < slot

    def next_run_time(self, state: ScheduleState, now: Optional[datetime] = None) -> Optional[datetime]:
        now = now or datetime.now(timezone.utc)
        for day_offset in (0, 1):
            day = now + timedelta(days=day_offset)
            for hour in self.hours:
                candidate = day.replace(hour=hour, minute=self.minute, second=0, microsecond=0)
                if candidate > now:
                    return candidate
        return None


def create_schedule(config: Dict[str, Any]) -> BaseSchedule:
    schedule_type = ScheduleType(config.get('type', ScheduleType.INTERVAL.value))
    if schedule_type == ScheduleType.TIME_OF_DAY:
        return TimeOfDaySchedule(config)
    return IntervalSchedule(config)
