"""
Stage handler base class and the objects handlers are built from.

A handler gets everything it touches through HandlerDeps (session-bound
content store, blob storage, capabilities, config) and returns a
StageResult. handle() never raises: capability and storage errors keep
their error code, anything unexpected becomes unknown_error, and the worker
supervisor decides what a failure means for the job and the record.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Type

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from tribora.capabilities.base import (
    BlobStorage, MediaTranscoder, SpeechToText, DocumentParser,
    DocumentGenerator, Embedder, VisionDescriber, OcrEngine,
)
from tribora.database.models import Content, Transcript
from tribora.processing.content_store import ContentStore
from tribora.processing.payloads import JobPayload
from tribora.processing.results import NextJob, StageResult
from tribora.processing.state.pipeline_state import next_stage
from tribora.utils.error_codes import ContentNotFoundError, ErrorCode, PipelineError
from tribora.utils.logger import setup_worker_logger


@dataclass
class HandlerDeps:
    session: Session
    contents: ContentStore
    storage: Optional[BlobStorage] = None
    config: Dict[str, Any] = field(default_factory=dict)
    transcoder: Optional[MediaTranscoder] = None
    speech: Optional[SpeechToText] = None
    parser: Optional[DocumentParser] = None
    generator: Optional[DocumentGenerator] = None
    embedder: Optional[Embedder] = None
    vision: Optional[VisionDescriber] = None
    ocr: Optional[OcrEngine] = None


@dataclass
class JobContext:
    """What a handler knows about the job it is running."""
    job_id: int
    job_type: str
    payload: JobPayload
    attempts: int = 1
    worker_id: str = ''
    heartbeat: Callable[[], Any] = lambda: None


class StageHandler:
    """Base class for all stage handlers."""

    job_type: str = ''
    payload_class: Type[JobPayload] = JobPayload

    def __init__(self, deps: HandlerDeps):
        self.deps = deps
        self.config = deps.config
        self.logger = setup_worker_logger(self.job_type or 'stage')

    def handle(self, ctx: JobContext) -> StageResult:
        if not isinstance(ctx.payload, self.payload_class):
            return StageResult.failed(
                ErrorCode.INVALID_PAYLOAD,
                f"{self.job_type} cannot handle {type(ctx.payload).__name__}",
                retryable=False,
            )
        try:
            return self.process(ctx.payload, ctx)
        except PipelineError as e:
            self.logger.error(f"[{ctx.job_id}] {self.job_type} failed ({e.error_code.value}): {e}")
            return StageResult.failed(e.error_code, str(e), e.retryable)
        except ContentNotFoundError as e:
            self.logger.warning(f"[{ctx.job_id}] {self.job_type}: {e}")
            return StageResult.failed(ErrorCode.NOT_FOUND, str(e), retryable=False)
        except SQLAlchemyError as e:
            self.logger.error(f"[{ctx.job_id}] {self.job_type} database error: {e}")
            return StageResult.failed(ErrorCode.TEMPORARY_FAILURE, f"Database error: {e}", retryable=True)
        except OSError as e:
            self.logger.error(f"[{ctx.job_id}] {self.job_type} I/O error: {e}")
            return StageResult.failed(ErrorCode.PROCESS_FAILED, str(e), retryable=True)
        except Exception as e:
            self.logger.error(f"[{ctx.job_id}] {self.job_type} unexpected error: {e}", exc_info=True)
            return StageResult.failed(ErrorCode.UNKNOWN_ERROR, f"Unexpected error: {e}", retryable=False)

    def process(self, payload: JobPayload, ctx: JobContext) -> StageResult:
        raise NotImplementedError

    # Helpers shared by content stages

    def load_content(self, payload) -> Content:
        return self.deps.contents.require(payload.content_id, payload.org_id)

    def require_capability(self, name: str):
        capability = getattr(self.deps, name)
        if capability is None:
            raise PipelineError(f"{self.job_type} requires the '{name}' capability",
                                ErrorCode.CAPABILITY_REJECTED, retryable=False)
        return capability

    def latest_transcript(self, content_id: str) -> Optional[Transcript]:
        query = (select(Transcript)
                 .where(Transcript.content_id == content_id)
                 .order_by(Transcript.created_at.desc(), Transcript.id.desc())
                 .limit(1))
        return self.deps.session.execute(query).scalars().first()

    def next_in_plan(self, content: Content, **extra) -> Optional[NextJob]:
        """NextJob for the stage after this one, or None when the chain ends here."""
        stage = next_stage(content.content_type, content.file_type, self.job_type)
        if stage is None:
            return None
        payload = {'content_id': content.id, 'org_id': content.org_id}
        payload.update({k: v for k, v in extra.items() if v is not None})
        return NextJob(type=stage.job_type, payload=payload)
