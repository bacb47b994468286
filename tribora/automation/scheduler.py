"""
Cron trigger: enqueues scheduled maintenance jobs (collect_metrics,
generate_alerts) on their configured schedules.

Each enqueue carries the dedupe key cron:<job type>, so a job type never has
more than one pending/processing run even with several schedulers.
"""

import threading
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from tribora.orchestration.job_queue import JobQueue
from tribora.processing.state.pipeline_state import CRON_TYPES
from tribora.utils.logger import setup_worker_logger

from .schedule_types import BaseSchedule, ScheduleState, create_schedule

logger = setup_worker_logger('scheduler')


class CronScheduler:
    """Enqueues scheduled jobs on each tick."""

    def __init__(self, session_factory: Callable[[], Session], config: Dict[str, Any]):
        self.session_factory = session_factory
        self.config = config
        scheduler_config = config.get('scheduler', {})
        self.tick_seconds = scheduler_config.get('tick_seconds', 30)

        self.schedules: Dict[str, BaseSchedule] = {}
        self.states: Dict[str, ScheduleState] = {}
        for job_type, job_config in (scheduler_config.get('jobs') or {}).items():
            if job_type not in CRON_TYPES:
                logger.warning(f"Ignoring schedule for unknown job type '{job_type}'")
                continue
            if job_config.get('enabled', True) is False:
                continue
            self.schedules[job_type] = create_schedule(job_config)
            self.states[job_type] = ScheduleState()

        self._stop = threading.Event()

    def tick(self, now: Optional[datetime] = None) -> List[str]:
        """Enqueue every due job type; returns the types enqueued."""
        now = now or datetime.now(timezone.utc)
        due = [job_type for job_type, schedule in self.schedules.items()
               if schedule.should_run(self.states[job_type], now)]
        if not due:
            return []

        enqueued = []
        session = self.session_factory()
        try:
            queue = JobQueue(session, self.config)
            for job_type in due:
                job = queue.enqueue(job_type, {}, dedupe_key=f"cron:{job_type}")
                self.states[job_type].last_run_time = now
                if job is None:
                    logger.info(f"{job_type} still pending from a previous run, not enqueued")
                    continue
                self.states[job_type].last_job_id = job.id
                enqueued.append(job_type)
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

        if enqueued:
            logger.info(f"Enqueued scheduled jobs: {', '.join(enqueued)}")
        return enqueued

    def run(self) -> None:
        logger.info(f"Scheduler started with {len(self.schedules)} schedule(s), tick {self.tick_seconds}s")
        while not self._stop.is_set():
            try:
                self.tick()
            except Exception as e:
                logger.error(f"Scheduler tick failed: {e}", exc_info=True)
            self._stop.wait(self.tick_seconds)
        logger.info("Scheduler stopped")

    def stop(self) -> None:
        self._stop.set()
