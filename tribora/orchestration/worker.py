"""
Pipeline workers.

A Worker polls the job queue, runs the matching stage handler and settles
the outcome through PipelineService:

    claim → skip check → handle → settle (one commit) → repeat

Idle polls back off exponentially from worker.poll_interval up to
worker.max_poll_interval. One worker per pool also runs the lease-expiry
sweep every worker.sweep_interval seconds. WorkerPool runs N workers on
threads, each with its own SQLAlchemy session.

Settling is fenced on the worker id: if the job was reclaimed while this
worker ran it, the outcome and the handler writes are rolled back.
"""

import threading
import time
import uuid
from typing import Any, Callable, Dict, List, Optional, Sequence

from sqlalchemy.orm import Session

from tribora.database.models import Job
from tribora.orchestration.job_queue import JobQueue
from tribora.orchestration.pipeline_service import PipelineService
from tribora.processing.content_store import ContentStore
from tribora.processing.payloads import PayloadError, parse_payload
from tribora.processing.results import StageResult
from tribora.processing_steps.base import HandlerDeps, JobContext
from tribora.processing_steps.registry import build_handlers
from tribora.utils.backoff import IdleBackoff
from tribora.utils.error_codes import ErrorCode, LeaseLostError
from tribora.utils.logger import TaskLogger, get_worker_name, setup_worker_logger

logger = setup_worker_logger('worker')


def build_capabilities(config: Dict[str, Any]) -> Dict[str, Any]:
    """Production adapters keyed by HandlerDeps field name."""
    from tribora.capabilities.document_parser import DocumentTextExtractor
    from tribora.capabilities.ffmpeg import FFmpegTranscoder
    from tribora.storage.s3_utils import S3Storage, S3StorageConfig

    capabilities: Dict[str, Any] = {
        'storage': S3Storage(S3StorageConfig.from_dict(config.get('storage', {}).get('s3', {}))),
        'transcoder': FFmpegTranscoder(),
        'parser': DocumentTextExtractor(),
    }
    if config.get('model_server', {}).get('base_url'):
        from tribora.capabilities.model_server import (
            ModelServerClient, ModelServerSpeechToText, ModelServerDocumentGenerator,
            ModelServerEmbedder, ModelServerVision, ModelServerOcr,
        )
        client = ModelServerClient(config)
        capabilities.update(
            speech=ModelServerSpeechToText(client),
            generator=ModelServerDocumentGenerator(client),
            embedder=ModelServerEmbedder(client),
            vision=ModelServerVision(client),
            ocr=ModelServerOcr(client),
        )
    else:
        logger.warning("model_server.base_url not set; transcription, documents, embeddings and "
                       "visual indexing jobs will fail with capability_rejected")
    return capabilities


class Worker:
    """Single-threaded claim/handle/settle loop."""

    def __init__(self, session_factory: Callable[[], Session], config: Dict[str, Any],
                 capabilities: Dict[str, Any], worker_id: Optional[str] = None,
                 job_types: Optional[Sequence[str]] = None, sweeper: bool = True):
        self.session_factory = session_factory
        self.config = config
        self.worker_id = worker_id or f"{get_worker_name()}-{uuid.uuid4().hex[:6]}"
        self.job_types = list(job_types) if job_types else None
        self.sweeper = sweeper

        worker_config = config.get('worker', {})
        self.backoff = IdleBackoff(worker_config.get('poll_interval', 2.0),
                                   worker_config.get('max_poll_interval', 10.0))
        self.sweep_interval = worker_config.get('sweep_interval', 60)
        self.heartbeat_interval = worker_config.get('heartbeat_interval', 60)

        self.session = session_factory()
        storage = capabilities.get('storage')
        self.queue = JobQueue(self.session, config)
        self.contents = ContentStore(self.session, storage)
        self.service = PipelineService(self.session, config, queue=self.queue, contents=self.contents)
        self.handlers = build_handlers(HandlerDeps(
            session=self.session, contents=self.contents, config=config, **capabilities))

        self.task_logger = TaskLogger(self.worker_id)
        self._stop = threading.Event()
        self._last_sweep = 0.0

    def stop(self):
        self._stop.set()

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    def run(self) -> None:
        logger.info(f"Worker {self.worker_id} started (types: {self.job_types or 'all'})")
        try:
            while not self._stop.is_set():
                self.maybe_sweep()
                try:
                    processed = self.run_once()
                except Exception as e:
                    logger.error(f"Worker {self.worker_id} loop error: {e}", exc_info=True)
                    self.session.rollback()
                    processed = False
                if processed:
                    self.backoff.reset()
                    continue
                self._stop.wait(self.backoff.record_empty())
        finally:
            self.session.close()
            logger.info(f"Worker {self.worker_id} stopped")

    def maybe_sweep(self) -> int:
        if not self.sweeper or time.monotonic() - self._last_sweep < self.sweep_interval:
            return 0
        self._last_sweep = time.monotonic()
        return self.service.reclaim_expired()

    def run_once(self) -> bool:
        """Claim and process one job; False when there was nothing to claim."""
        job = self.queue.claim_next(self.worker_id, self.job_types)
        if job is None:
            return False

        job_id, job_type, content_id = job.id, job.type, job.content_id
        start = time.time()

        skip = self.service.skip_reason(job)
        if skip:
            try:
                self.queue.complete(job_id, {'skipped': skip}, worker_id=self.worker_id)
            except LeaseLostError as e:
                return self._drop_outcome(job_id, job_type, e)
            self.session.commit()
            logger.info(f"Skipped job {job_id} ({job_type}) for {content_id}: {skip}")
            return True

        self.service.mark_started(job)
        self.session.commit()

        result = self._execute(job)

        if result.success:
            try:
                self.service.settle_success(self.queue.get(job_id), result, worker_id=self.worker_id)
                self.session.commit()
                self.task_logger.log_completion(job_type, content_id, time.time() - start)
                return True
            except LeaseLostError as e:
                return self._drop_outcome(job_id, job_type, e)
            except Exception as e:
                logger.error(f"Failed to settle job {job_id} ({job_type}): {e}", exc_info=True)
                self.session.rollback()
                result = StageResult.failed(ErrorCode.TEMPORARY_FAILURE, f"Could not record result: {e}",
                                            retryable=True)
        else:
            # Drop anything the handler wrote before failing
            self.session.rollback()

        try:
            self.service.settle_failure(self.queue.get(job_id), result, worker_id=self.worker_id)
        except LeaseLostError as e:
            return self._drop_outcome(job_id, job_type, e)
        self.session.commit()
        self.task_logger.log_error(job_type, content_id,
                                   f"{result.error_code.value if result.error_code else 'error'}: {result.error}",
                                   time.time() - start)
        return True

    def _drop_outcome(self, job_id: int, job_type: str, error: LeaseLostError) -> bool:
        """The job was reclaimed while this worker ran it; the new holder settles it."""
        self.session.rollback()
        logger.warning(f"Worker {self.worker_id} dropped outcome of job {job_id} ({job_type}): {error}")
        return True

    def _execute(self, job: Job) -> StageResult:
        handler = self.handlers.get(job.type)
        if handler is None:
            return StageResult.failed(ErrorCode.INVALID_PAYLOAD, f"No handler for job type '{job.type}'",
                                      retryable=False)
        try:
            payload = parse_payload(job.type, job.payload)
        except PayloadError as e:
            return StageResult.failed(ErrorCode.INVALID_PAYLOAD, str(e), retryable=False)

        ctx = JobContext(
            job_id=job.id,
            job_type=job.type,
            payload=payload,
            attempts=job.attempts,
            worker_id=self.worker_id,
            heartbeat=self._heartbeat_callback(job.id),
        )
        return handler.handle(ctx)

    def _heartbeat_callback(self, job_id: int) -> Callable[[], bool]:
        """Rate-limited heartbeat on a separate session, so handler writes stay uncommitted."""
        last = {'at': time.monotonic()}

        def heartbeat() -> bool:
            if time.monotonic() - last['at'] < self.heartbeat_interval:
                return True
            last['at'] = time.monotonic()
            session = self.session_factory()
            try:
                return JobQueue(session, self.config).heartbeat(job_id, worker_id=self.worker_id)
            finally:
                session.close()

        return heartbeat


class WorkerPool:
    """Runs N workers on threads."""

    def __init__(self, session_factory: Callable[[], Session], config: Dict[str, Any],
                 capabilities: Dict[str, Any], size: Optional[int] = None,
                 job_types: Optional[Sequence[str]] = None):
        self.size = size or config.get('worker', {}).get('pool_size', 4)
        base_name = get_worker_name()
        self.workers: List[Worker] = [
            Worker(session_factory, config, capabilities,
                   worker_id=f"{base_name}-{index}", job_types=job_types, sweeper=(index == 0))
            for index in range(self.size)
        ]
        self.threads: List[threading.Thread] = []

    def start(self) -> None:
        for worker in self.workers:
            thread = threading.Thread(target=worker.run, name=worker.worker_id, daemon=True)
            thread.start()
            self.threads.append(thread)
        logger.info(f"Worker pool started with {self.size} worker(s)")

    def stop(self, timeout: Optional[float] = None) -> None:
        for worker in self.workers:
            worker.stop()
        for thread in self.threads:
            thread.join(timeout)
        logger.info("Worker pool stopped")

    def wait(self) -> None:
        for thread in self.threads:
            while thread.is_alive():
                thread.join(1.0)
