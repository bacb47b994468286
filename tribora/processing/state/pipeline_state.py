"""
Pipeline State Machine - Content status progression per content type.

Every content record moves forward through a subset of one linear sequence:

    uploading → uploaded → transcribing → doc_generating → embedding → completed
                                                                    ↘ error (from any stage)

Which subset applies is data, not code: STAGE_PLANS maps a content type (and,
for documents, the file type) to the ordered list of job types that make up
its main chain, together with the status each job places the record in.

    video      extract_audio → transcribe → doc_generate → generate_embeddings
    audio      transcribe → doc_generate → generate_embeddings
    recording  transcribe → doc_generate → generate_embeddings
    document   extract_text_pdf | extract_text_docx
    text       process_text_note → doc_generate

Video additionally forks the frames chain (extract_frames). That chain tracks
its own progress in Content.visual_indexing_status and never writes status.

`completed` and `error` are terminal. The only way out of `error` is the
explicit retry action, which resets to the status of the job being retried.
"""

from enum import Enum
from dataclasses import dataclass
from typing import Dict, List, Optional, Set, Tuple


class ContentStatus(str, Enum):
    """Main-chain status of a content record."""
    UPLOADING = "uploading"
    UPLOADED = "uploaded"
    TRANSCRIBING = "transcribing"
    DOC_GENERATING = "doc_generating"
    EMBEDDING = "embedding"
    COMPLETED = "completed"
    ERROR = "error"


class VisualIndexingStatus(str, Enum):
    """Frames-chain status, kept in Content.visual_indexing_status."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class ContentType(str, Enum):
    RECORDING = "recording"
    VIDEO = "video"
    AUDIO = "audio"
    DOCUMENT = "document"
    TEXT = "text"


TERMINAL_STATUSES: Set[str] = {ContentStatus.COMPLETED.value, ContentStatus.ERROR.value}
TERMINAL_VISUAL_STATUSES: Set[str] = {VisualIndexingStatus.COMPLETED.value, VisualIndexingStatus.FAILED.value}

# Forward order, used to check that status never moves backwards
STATUS_ORDER: List[str] = [
    ContentStatus.UPLOADING.value,
    ContentStatus.UPLOADED.value,
    ContentStatus.TRANSCRIBING.value,
    ContentStatus.DOC_GENERATING.value,
    ContentStatus.EMBEDDING.value,
    ContentStatus.COMPLETED.value,
]

# Legal transitions (old -> allowed new). Retry resets bypass this table.
TRANSITIONS: Dict[str, Set[str]] = {
    ContentStatus.UPLOADING.value: {ContentStatus.UPLOADED.value, ContentStatus.ERROR.value},
    ContentStatus.UPLOADED.value: {ContentStatus.TRANSCRIBING.value, ContentStatus.ERROR.value},
    ContentStatus.TRANSCRIBING.value: {
        ContentStatus.TRANSCRIBING.value,
        ContentStatus.DOC_GENERATING.value,
        ContentStatus.COMPLETED.value,
        ContentStatus.ERROR.value,
    },
    ContentStatus.DOC_GENERATING.value: {
        ContentStatus.EMBEDDING.value,
        ContentStatus.COMPLETED.value,
        ContentStatus.ERROR.value,
    },
    ContentStatus.EMBEDDING.value: {ContentStatus.COMPLETED.value, ContentStatus.ERROR.value},
    ContentStatus.COMPLETED.value: set(),
    ContentStatus.ERROR.value: set(),
}


@dataclass(frozen=True)
class Stage:
    """One step of a main chain: the job type and the status it runs under."""
    job_type: str
    status: str


_TRANSCRIBE = Stage('transcribe', ContentStatus.TRANSCRIBING.value)
_DOC_GENERATE = Stage('doc_generate', ContentStatus.DOC_GENERATING.value)
_EMBEDDINGS = Stage('generate_embeddings', ContentStatus.EMBEDDING.value)

# (content_type, file_type or None) -> ordered main chain
STAGE_PLANS: Dict[Tuple[str, Optional[str]], List[Stage]] = {
    ('video', None): [
        Stage('extract_audio', ContentStatus.TRANSCRIBING.value),
        _TRANSCRIBE, _DOC_GENERATE, _EMBEDDINGS,
    ],
    ('audio', None): [_TRANSCRIBE, _DOC_GENERATE, _EMBEDDINGS],
    ('recording', None): [_TRANSCRIBE, _DOC_GENERATE, _EMBEDDINGS],
    ('document', 'pdf'): [Stage('extract_text_pdf', ContentStatus.TRANSCRIBING.value)],
    ('document', 'docx'): [Stage('extract_text_docx', ContentStatus.TRANSCRIBING.value)],
    ('text', None): [
        Stage('process_text_note', ContentStatus.TRANSCRIBING.value),
        _DOC_GENERATE,
    ],
}

# Secondary chains started next to the main chain at intake
FORKED_STAGES: Dict[str, List[str]] = {
    'video': ['extract_frames'],
}

MAIN_CHAIN_TYPES: Set[str] = {stage.job_type for plan in STAGE_PLANS.values() for stage in plan}
FRAMES_CHAIN_TYPES: Set[str] = {'extract_frames'}
CRON_TYPES: Set[str] = {'collect_metrics', 'generate_alerts'}

_STATUS_BY_JOB_TYPE: Dict[str, str] = {
    stage.job_type: stage.status for plan in STAGE_PLANS.values() for stage in plan
}


def _plan_key(content_type: str, file_type: Optional[str]) -> Tuple[str, Optional[str]]:
    if content_type == ContentType.DOCUMENT.value:
        ext = (file_type or '').lower().lstrip('.')
        return ('document', 'docx' if ext in ('docx', 'doc') else 'pdf')
    return (content_type, None)


def stage_plan(content_type: str, file_type: Optional[str] = None) -> List[Stage]:
    """Return the ordered main chain for a content type."""
    key = _plan_key(content_type, file_type)
    if key not in STAGE_PLANS:
        raise ValueError(f"No stage plan for content type '{content_type}'")
    return list(STAGE_PLANS[key])


def first_stage(content_type: str, file_type: Optional[str] = None) -> Stage:
    return stage_plan(content_type, file_type)[0]


def next_stage(content_type: str, file_type: Optional[str], job_type: str) -> Optional[Stage]:
    """Stage that follows job_type in this content type's plan; None means completed."""
    plan = stage_plan(content_type, file_type)
    for index, stage in enumerate(plan):
        if stage.job_type == job_type:
            return plan[index + 1] if index + 1 < len(plan) else None
    raise ValueError(f"Job type '{job_type}' is not part of the {content_type} pipeline")


def forked_stages(content_type: str) -> List[str]:
    return list(FORKED_STAGES.get(content_type, []))


def status_for_stage(job_type: str) -> str:
    """Status a record is placed in while job_type is pending/running."""
    try:
        return _STATUS_BY_JOB_TYPE[job_type]
    except KeyError:
        raise ValueError(f"Job type '{job_type}' has no main-chain status")


def can_transition(old_status: Optional[str], new_status: str) -> bool:
    if old_status is None:
        return new_status == ContentStatus.UPLOADING.value
    return new_status in TRANSITIONS.get(old_status, set())


def is_terminal(status: Optional[str]) -> bool:
    return status in TERMINAL_STATUSES


def chain_for(job_type: str) -> Optional[str]:
    """'main', 'frames', or None for jobs that are not tied to one content record."""
    if job_type in MAIN_CHAIN_TYPES:
        return 'main'
    if job_type in FRAMES_CHAIN_TYPES:
        return 'frames'
    return None


def chain_job_types(chain: str) -> Set[str]:
    if chain == 'main':
        return set(MAIN_CHAIN_TYPES)
    if chain == 'frames':
        return set(FRAMES_CHAIN_TYPES)
    return set()
