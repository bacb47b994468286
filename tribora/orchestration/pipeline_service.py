"""
Pipeline Service - applies stage outcomes to the queue and the content record.

This is the only place that turns a StageResult into side effects:

- success: complete the job, move the record to the next stage's status (or
  completed) and enqueue the next job
- failure: fail the job, then either enqueue a retry (record untouched) or
  end the chain (status=error for the main chain,
  visual_indexing_status=failed for the frames chain)

Settle methods flush but never commit; the caller commits once so each
outcome is applied atomically. reclaim_expired (the lease sweep) commits.
"""

from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from tribora.database.models import Content, Job
from tribora.orchestration.job_queue import JobQueue
from tribora.orchestration.retry_policy import RetryDecision, RetryPolicy
from tribora.processing.content_store import ContentStore
from tribora.processing.results import StageResult
from tribora.processing.state.pipeline_state import (
    ContentStatus, VisualIndexingStatus, TERMINAL_VISUAL_STATUSES,
    can_transition, chain_for, chain_job_types, first_stage, forked_stages,
    is_terminal, status_for_stage,
)
from tribora.utils.error_codes import ValidationError
from tribora.utils.logger import setup_worker_logger

logger = setup_worker_logger('pipeline')


class PipelineService:
    """Status/queue bookkeeping around stage execution."""

    def __init__(self, session: Session, config: Optional[Dict[str, Any]] = None,
                 storage=None, queue: Optional[JobQueue] = None,
                 contents: Optional[ContentStore] = None,
                 retry_policy: Optional[RetryPolicy] = None):
        self.session = session
        self.config = config or {}
        self.queue = queue or JobQueue(session, self.config)
        self.contents = contents or ContentStore(session, storage)
        self.retry_policy = retry_policy or RetryPolicy.from_config(self.config)
        self.frames_enabled = self.config.get('pipeline', {}).get('frames_enabled', True)

    def start(self, content: Content, **payload_extra) -> Job:
        """Enqueue the first stage for an uploaded record and fork side chains."""
        stage = first_stage(content.content_type, content.file_type)
        payload = {'content_id': content.id, 'org_id': content.org_id,
                   'storage_path': content.storage_path_raw}
        payload.update(payload_extra)
        job = self.queue.enqueue(stage.job_type, payload)
        if job is None:
            raise ValidationError(f"Content {content.id} already has an active job")
        self.contents.update_status(content.id, stage.status)

        if self.frames_enabled:
            for job_type in forked_stages(content.content_type):
                forked = self.queue.enqueue(job_type, {
                    'content_id': content.id, 'org_id': content.org_id,
                    'storage_path': content.storage_path_raw,
                })
                if forked is not None:
                    self.contents.set_visual_status(content.id, VisualIndexingStatus.PENDING.value)
        logger.info(f"Started {content.content_type} pipeline for {content.id} with {stage.job_type}")
        return job

    def skip_reason(self, job: Job) -> Optional[str]:
        """Why a claimed job should not run, or None if it should."""
        chain = chain_for(job.type)
        if chain is None:
            return None
        content = self.contents.get(job.content_id, include_deleted=True)
        if content is None or content.is_deleted:
            return 'content_deleted'
        if chain == 'main' and is_terminal(content.status):
            return f"content_{content.status}"
        if chain == 'frames' and content.visual_indexing_status in TERMINAL_VISUAL_STATUSES:
            return f"frames_{content.visual_indexing_status}"
        return None

    def mark_started(self, job: Job) -> None:
        if chain_for(job.type) == 'frames':
            self.contents.set_visual_status(job.content_id, VisualIndexingStatus.PROCESSING.value)

    def settle_success(self, job: Job, result: StageResult, worker_id: Optional[str] = None) -> Optional[Job]:
        """Complete job, advance status, enqueue next; returns the next job if any."""
        self.queue.complete(job.id, result.data, worker_id=worker_id)
        chain = chain_for(job.type)
        next_job = None

        if chain == 'main':
            content = self.contents.get(job.content_id, include_deleted=True)
            if content is None:
                return None
            new_status = ContentStatus.COMPLETED.value
            if result.next_job is not None:
                new_status = status_for_stage(result.next_job.type)

            if not can_transition(content.status, new_status):
                logger.warning(f"[{content.id}] Ignoring transition {content.status} -> {new_status} "
                               f"after {job.type}")
                return None
            if result.next_job is not None:
                next_job = self.queue.enqueue(result.next_job.type, result.next_job.payload)
                if next_job is None:
                    # Another active main-chain job owns the record; it moves the status
                    logger.error(f"[{content.id}] {result.next_job.type} not enqueued after {job.type}: "
                                 f"the chain already has an active job, status left at {content.status}")
                    return None
            self.contents.update_status(content.id, new_status)
            logger.info(f"[{content.id}] {job.type} done, status {new_status}"
                        + (f", next {next_job.type}" if next_job else ""))

        elif chain == 'frames':
            self.contents.set_visual_status(job.content_id, VisualIndexingStatus.COMPLETED.value)

        return next_job

    def settle_failure(self, job: Job, result: StageResult, worker_id: Optional[str] = None) -> RetryDecision:
        """Fail job, then retry it or end its chain."""
        error_code = result.error_code.value if result.error_code else None
        self.queue.fail(job.id, result.error or 'unknown error', error_code, worker_id=worker_id)

        decision = self.retry_policy.decide(result, job.attempts)
        if decision.retry:
            retry_job = self.queue.enqueue(job.type, job.payload, run_at=decision.run_at,
                                           priority=job.priority, dedupe_key=job.dedupe_key,
                                           attempts=decision.next_attempt)
            if retry_job is not None:
                logger.warning(f"[{job.content_id}] {job.type} attempt {job.attempts} failed ({error_code}), "
                               f"retrying in {decision.delay_seconds:.0f}s")
                return decision
            logger.error(f"[{job.content_id}] Retry of {job.type} not enqueued: "
                         f"an active job already holds its chain or dedupe key")
            return RetryDecision(retry=False, reason='retry not enqueued')

        self._end_chain(job, f"{job.type} failed: {result.error}")
        logger.error(f"[{job.content_id}] {job.type} failed permanently ({decision.reason}): {result.error}")
        return decision

    def _end_chain(self, job: Job, message: str) -> None:
        chain = chain_for(job.type)
        if chain and self.contents.get(job.content_id, include_deleted=True) is not None:
            if chain == 'main':
                self.contents.set_error(job.content_id, message)
            else:
                self.contents.set_visual_status(job.content_id, VisualIndexingStatus.FAILED.value)

    def reclaim_expired(self) -> int:
        """
        Lease-expiry sweep.

        Expired jobs still within the retry ceiling go back to pending with
        attempts + 1. Jobs that expired on their last attempt are failed and
        their chain ends like any other exhausted retry. Commits.
        """
        try:
            exhausted = self.queue.fail_exhausted_leases(self.retry_policy.max_retries)
            for job in exhausted:
                self._end_chain(job, f"{job.type} failed: worker lease expired on attempt {job.attempts}")
        except Exception:
            self.session.rollback()
            raise
        return len(exhausted) + self.queue.reclaim_expired()

    def retry_content(self, content_id: str, org_id: str) -> Job:
        """Explicit retry: reset an errored record and re-enqueue its failed stage."""
        content = self.contents.require(content_id, org_id)
        if content.status != ContentStatus.ERROR.value:
            raise ValidationError(f"Content {content_id} is {content.status}, only errored content can be retried")

        failed = self.queue.last_failed(content_id, types=chain_job_types('main'))
        if failed is not None:
            job_type, payload = failed.type, dict(failed.payload or {})
        else:
            stage = first_stage(content.content_type, content.file_type)
            job_type = stage.job_type
            payload = {'content_id': content.id, 'org_id': content.org_id,
                       'storage_path': content.storage_path_raw}

        job = self.queue.enqueue(job_type, payload, attempts=1)
        if job is None:
            raise ValidationError(f"Content {content_id} already has an active job")
        self.contents.update_status(content_id, status_for_stage(job_type))
        logger.info(f"[{content_id}] Retrying from {job_type}")
        return job
