"""
Job Queue Store - durable, at-least-once work queue on the jobs table.

Claiming is two steps: candidate rows are selected with FOR UPDATE SKIP LOCKED
(PostgreSQL) ordered by priority, run_at, created_at; each candidate is then
flipped with a conditional UPDATE ... WHERE status = 'pending'. Only the
caller whose UPDATE touched the row owns the job, so two workers racing for
the same row never both get it. The loser simply sees "no work".

Transactions: claim_next, heartbeat and reclaim_expired commit on their own
(other workers must see them immediately). enqueue, complete and fail only
flush, so the worker supervisor can complete a job, advance the content
status and enqueue the next stage in a single commit.

Workers pass their worker_id to complete, fail and heartbeat. Those writes
are conditional on the job still being processing under that worker, so a
worker whose lease expired and whose job was reclaimed cannot settle it.
"""

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import select, update, func
from sqlalchemy.orm import Session

from tribora.database.models import Job, utcnow
from tribora.processing.payloads import parse_payload
from tribora.processing.state.pipeline_state import chain_for, chain_job_types
from tribora.utils.error_codes import ErrorCode, LeaseLostError
from tribora.utils.logger import setup_worker_logger

logger = setup_worker_logger('job_queue')

ACTIVE_STATUSES = ('pending', 'processing')


class JobQueue:
    """Queue operations bound to one SQLAlchemy session."""

    def __init__(self, session: Session, config: Optional[Dict[str, Any]] = None):
        self.session = session
        queue_config = (config or {}).get('queue', {})
        self.lease_seconds = queue_config.get('lease_seconds', 900)
        self.default_priority = queue_config.get('default_priority', 2)
        self.priorities = queue_config.get('priorities', {})
        self.claim_batch_size = queue_config.get('claim_batch_size', 5)

    def priority_for(self, job_type: str) -> int:
        return self.priorities.get(job_type, self.default_priority)

    def enqueue(self, job_type: str, payload: Dict[str, Any], run_at: Optional[datetime] = None,
                priority: Optional[int] = None, dedupe_key: Optional[str] = None,
                attempts: int = 1) -> Optional[Job]:
        """
        Create a pending job.

        Returns None (and creates nothing) when an active job already holds
        dedupe_key, or when the target content already has an active job in
        the same chain.
        """
        parsed = parse_payload(job_type, payload)
        content_id = getattr(parsed, 'content_id', None)
        org_id = getattr(parsed, 'org_id', None)

        if dedupe_key and self._active_exists(Job.dedupe_key == dedupe_key):
            logger.info(f"Skipping {job_type}: active job with dedupe key {dedupe_key} exists")
            return None

        chain = chain_for(job_type)
        if content_id and chain:
            if self._active_exists(Job.content_id == content_id,
                                   Job.type.in_(chain_job_types(chain))):
                logger.warning(f"Skipping {job_type} for {content_id}: {chain} chain already has an active job")
                return None

        job = Job(
            type=job_type,
            status='pending',
            payload=parsed.to_dict(),
            content_id=content_id,
            org_id=org_id,
            priority=self.priority_for(job_type) if priority is None else priority,
            run_at=run_at or utcnow(),
            attempts=attempts,
            dedupe_key=dedupe_key,
        )
        self.session.add(job)
        self.session.flush()
        logger.debug(f"Enqueued job {job.id} ({job_type}) for content {content_id}, attempt {attempts}")
        return job

    def _active_exists(self, *criteria) -> bool:
        query = select(Job.id).where(Job.status.in_(ACTIVE_STATUSES), *criteria).limit(1)
        return self.session.execute(query).first() is not None

    def claim_next(self, worker_id: str, types: Optional[Sequence[str]] = None) -> Optional[Job]:
        """Claim one due pending job for worker_id, or return None if there is none to win."""
        now = utcnow()
        query = (
            select(Job.id)
            .where(Job.status == 'pending', Job.run_at <= now)
            .order_by(Job.priority.asc(), Job.run_at.asc(), Job.created_at.asc(), Job.id.asc())
            .limit(self.claim_batch_size)
            .with_for_update(skip_locked=True)
        )
        if types:
            query = query.where(Job.type.in_(list(types)))

        try:
            candidate_ids = self.session.execute(query).scalars().all()
            for job_id in candidate_ids:
                if self._try_claim(job_id, worker_id, now):
                    self.session.commit()
                    job = self.session.get(Job, job_id)
                    logger.debug(f"Worker {worker_id} claimed job {job_id} ({job.type})")
                    return job
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        return None

    def _try_claim(self, job_id: int, worker_id: str, now: Optional[datetime] = None) -> bool:
        now = now or utcnow()
        result = self.session.execute(
            update(Job)
            .where(Job.id == job_id, Job.status == 'pending')
            .values(
                status='processing',
                worker_id=worker_id,
                started_at=now,
                last_heartbeat=now,
                lease_expires_at=now + timedelta(seconds=self.lease_seconds),
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def heartbeat(self, job_id: int, worker_id: Optional[str] = None) -> bool:
        """Extend the lease of a processing job; False if the job is no longer processing (for worker_id)."""
        now = utcnow()
        query = update(Job).where(Job.id == job_id, Job.status == 'processing')
        if worker_id is not None:
            query = query.where(Job.worker_id == worker_id)
        result = self.session.execute(
            query
            .values(last_heartbeat=now, lease_expires_at=now + timedelta(seconds=self.lease_seconds))
            .execution_options(synchronize_session=False)
        )
        self.session.commit()
        return result.rowcount == 1

    def complete(self, job_id: int, result: Optional[Dict[str, Any]] = None,
                 worker_id: Optional[str] = None) -> Job:
        """
        Mark completed.

        With worker_id, only succeeds while that worker still holds the job;
        otherwise raises LeaseLostError and writes nothing.
        """
        return self._finish(job_id, worker_id, {
            'status': 'completed',
            'completed_at': utcnow(),
            'lease_expires_at': None,
            'result': result or {},
        })

    def fail(self, job_id: int, error: str, error_code: Optional[str] = None,
             worker_id: Optional[str] = None) -> Job:
        """Mark failed. Whether to retry is decided by the caller."""
        return self._finish(job_id, worker_id, {
            'status': 'failed',
            'completed_at': utcnow(),
            'lease_expires_at': None,
            'error': error,
            'error_code': error_code,
        })

    def _finish(self, job_id: int, worker_id: Optional[str], values: Dict[str, Any]) -> Job:
        job = self._require(job_id)
        if worker_id is None:
            for key, value in values.items():
                setattr(job, key, value)
            self.session.flush()
            return job

        updated = self.session.execute(
            update(Job)
            .where(Job.id == job_id, Job.status == 'processing', Job.worker_id == worker_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if updated.rowcount != 1:
            raise LeaseLostError(f"Job {job_id} is no longer held by {worker_id}")
        self.session.expire(job)
        return job

    def fail_exhausted_leases(self, max_retries: int) -> List[Job]:
        """
        Fail processing jobs whose lease expired on their last allowed attempt.

        A job on attempt N is only reclaimed while N <= max_retries; past that
        it is failed with error_code 'timeout' so its chain can be ended.
        Flushes only; the caller commits.
        """
        now = utcnow()
        candidate_ids = self.session.execute(
            select(Job.id)
            .where(Job.status == 'processing', Job.lease_expires_at < now, Job.attempts > max_retries)
            .with_for_update(skip_locked=True)
        ).scalars().all()

        failed = []
        for job_id in candidate_ids:
            updated = self.session.execute(
                update(Job)
                .where(Job.id == job_id, Job.status == 'processing', Job.lease_expires_at < now)
                .values(status='failed', completed_at=now, lease_expires_at=None,
                        error='Worker lease expired on the final attempt',
                        error_code=ErrorCode.TIMEOUT.value)
                .execution_options(synchronize_session=False)
            )
            if updated.rowcount == 1:
                job = self.session.get(Job, job_id)
                self.session.expire(job)
                failed.append(job)
        if failed:
            logger.error(f"Failed {len(failed)} job(s) whose lease expired after the last attempt")
        return failed

    def reclaim_expired(self) -> int:
        """Return processing jobs with an expired lease to pending (attempts + 1)."""
        result = self.session.execute(
            update(Job)
            .where(Job.status == 'processing', Job.lease_expires_at < utcnow())
            .values(
                status='pending',
                attempts=Job.attempts + 1,
                worker_id=None,
                lease_expires_at=None,
                run_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        self.session.commit()
        if result.rowcount:
            logger.warning(f"Reclaimed {result.rowcount} job(s) with expired leases")
        return result.rowcount

    def get(self, job_id: int) -> Optional[Job]:
        return self.session.get(Job, job_id)

    def _require(self, job_id: int) -> Job:
        job = self.session.get(Job, job_id)
        if job is None:
            raise LookupError(f"Job {job_id} not found")
        return job

    def history(self, content_id: str) -> List[Job]:
        """All jobs for a content record in creation order."""
        query = select(Job).where(Job.content_id == content_id).order_by(Job.created_at.asc(), Job.id.asc())
        return list(self.session.execute(query).scalars().all())

    def active_jobs(self, content_id: str) -> List[Job]:
        query = select(Job).where(Job.content_id == content_id, Job.status.in_(ACTIVE_STATUSES))
        return list(self.session.execute(query).scalars().all())

    def last_failed(self, content_id: str, types: Optional[Sequence[str]] = None) -> Optional[Job]:
        query = select(Job).where(Job.content_id == content_id, Job.status == 'failed')
        if types:
            query = query.where(Job.type.in_(list(types)))
        query = query.order_by(Job.created_at.desc(), Job.id.desc()).limit(1)
        return self.session.execute(query).scalars().first()

    def stats(self) -> Dict[str, Any]:
        """Job counts per status and pending counts per type."""
        by_status = dict(self.session.execute(
            select(Job.status, func.count(Job.id)).group_by(Job.status)
        ).all())
        pending_by_type = dict(self.session.execute(
            select(Job.type, func.count(Job.id)).where(Job.status == 'pending').group_by(Job.type)
        ).all())
        return {
            'by_status': by_status,
            'pending_by_type': pending_by_type,
            'total': sum(by_status.values()),
        }
