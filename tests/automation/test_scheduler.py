"""
Tests for schedule types and the cron trigger.
"""

from datetime import datetime, timedelta, timezone

from sqlalchemy import select

from tribora.automation.schedule_types import (
    IntervalSchedule, ScheduleState, TimeOfDaySchedule, create_schedule,
)
from tribora.automation.scheduler import CronScheduler
from tribora.database.models import Job
from tribora.orchestration.job_queue import JobQueue

NOON = datetime(2026, 5, 4, 12, 0, tzinfo=timezone.utc)


class TestScheduleTypes:
    """Tests for IntervalSchedule and TimeOfDaySchedule"""

    def test_interval(self):
        schedule = IntervalSchedule({'interval_seconds': 900})
        state = ScheduleState()
        assert schedule.should_run(state, NOON)

        state.last_run_time = NOON
        assert not schedule.should_run(state, NOON + timedelta(minutes=14))
        assert schedule.should_run(state, NOON + timedelta(minutes=15))
        assert schedule.next_run_time(state) == NOON + timedelta(minutes=15)

    def test_time_of_day_runs_once_per_slot(self):
        schedule = TimeOfDaySchedule({'hours': [0, 12], 'minute': 5})
        state = ScheduleState()
        assert not schedule.should_run(state, NOON)
        assert schedule.should_run(state, NOON + timedelta(minutes=6))

        state.last_run_time = NOON + timedelta(minutes=6)
        assert not schedule.should_run(state, NOON + timedelta(minutes=30))
        assert schedule.next_run_time(state, NOON + timedelta(minutes=30)) == datetime(
            2026, 5, 5, 0, 5, tzinfo=timezone.utc)

    def test_create_schedule(self):
        assert isinstance(create_schedule({'interval_seconds': 5}), IntervalSchedule)
        assert isinstance(create_schedule({'type': 'time_of_day', 'hours': [3]}), TimeOfDaySchedule)


class TestCronScheduler:
    """Tests for CronScheduler.tick"""

    def test_tick_enqueues_due_jobs_once(self, session_factory, session, config):
        scheduler = CronScheduler(session_factory, config)

        assert sorted(scheduler.tick(NOON)) == ['collect_metrics', 'generate_alerts']
        assert scheduler.tick(NOON + timedelta(minutes=1)) == []

        jobs = session.execute(select(Job)).scalars().all()
        assert {job.dedupe_key for job in jobs} == {'cron:collect_metrics', 'cron:generate_alerts'}
        assert all(job.priority == 3 for job in jobs)

    def test_pending_run_not_duplicated(self, session_factory, session, config):
        """An interval elapsing while the previous run is still pending adds nothing"""
        scheduler = CronScheduler(session_factory, config)
        scheduler.tick(NOON)

        assert scheduler.tick(NOON + timedelta(minutes=15)) == []

        JobQueue(session, config).claim_next('w', types=['generate_alerts'])
        alerts_job = session.execute(select(Job).where(Job.type == 'generate_alerts')).scalar_one()
        JobQueue(session, config).complete(alerts_job.id)
        session.commit()

        assert scheduler.tick(NOON + timedelta(minutes=30)) == ['generate_alerts']

    def test_unknown_and_disabled_jobs_ignored(self, session_factory):
        scheduler = CronScheduler(session_factory, {'scheduler': {'jobs': {
            'transcribe': {'interval_seconds': 10},
            'collect_metrics': {'interval_seconds': 10, 'enabled': False},
            'generate_alerts': {'interval_seconds': 10},
        }}})
        assert list(scheduler.schedules) == ['generate_alerts']
