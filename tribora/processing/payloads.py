"""
Typed job payloads.

Each job type has one payload class. Payloads are stored as JSON on the Job
row; enqueue validates them through from_dict() and handlers only accept
their own class, so a malformed or mistyped payload fails with
invalid_payload instead of an AttributeError deep inside a stage.
"""

from dataclasses import dataclass, asdict, fields, MISSING
from typing import Any, Dict, Optional, Type


class PayloadError(ValueError):
    """Payload does not match the shape required by its job type."""


@dataclass
class JobPayload:
    """Base class; subclasses set job_type."""
    job_type = ''

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'JobPayload':
        data = data or {}
        if not isinstance(data, dict):
            raise PayloadError(f"{cls.job_type} payload must be an object")
        kwargs = {}
        for f in fields(cls):
            if f.name in data:
                kwargs[f.name] = data[f.name]
            elif f.default is MISSING and f.default_factory is MISSING:
                raise PayloadError(f"{cls.job_type} payload is missing '{f.name}'")
        return cls(**kwargs)

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


@dataclass
class ContentJobPayload(JobPayload):
    """Payload for jobs that act on one content record."""
    content_id: str
    org_id: str

    def __post_init__(self):
        if not self.content_id or not self.org_id:
            raise PayloadError(f"{self.job_type} payload needs content_id and org_id")


@dataclass
class ExtractAudioPayload(ContentJobPayload):
    job_type = 'extract_audio'
    storage_path: Optional[str] = None


@dataclass
class TranscribePayload(ContentJobPayload):
    job_type = 'transcribe'
    storage_path: Optional[str] = None
    language: Optional[str] = None


@dataclass
class ExtractTextPdfPayload(ContentJobPayload):
    job_type = 'extract_text_pdf'
    storage_path: Optional[str] = None


@dataclass
class ExtractTextDocxPayload(ContentJobPayload):
    job_type = 'extract_text_docx'
    storage_path: Optional[str] = None


@dataclass
class ProcessTextNotePayload(ContentJobPayload):
    job_type = 'process_text_note'
    note_format: str = 'plain'


@dataclass
class DocGeneratePayload(ContentJobPayload):
    job_type = 'doc_generate'


@dataclass
class GenerateEmbeddingsPayload(ContentJobPayload):
    job_type = 'generate_embeddings'


@dataclass
class ExtractFramesPayload(ContentJobPayload):
    job_type = 'extract_frames'
    storage_path: Optional[str] = None


@dataclass
class CollectMetricsPayload(JobPayload):
    """org_id None means every organization."""
    job_type = 'collect_metrics'
    org_id: Optional[str] = None


@dataclass
class GenerateAlertsPayload(JobPayload):
    job_type = 'generate_alerts'
    org_id: Optional[str] = None


PAYLOAD_TYPES: Dict[str, Type[JobPayload]] = {
    cls.job_type: cls for cls in (
        ExtractAudioPayload,
        TranscribePayload,
        ExtractTextPdfPayload,
        ExtractTextDocxPayload,
        ProcessTextNotePayload,
        DocGeneratePayload,
        GenerateEmbeddingsPayload,
        ExtractFramesPayload,
        CollectMetricsPayload,
        GenerateAlertsPayload,
    )
}


def parse_payload(job_type: str, data: Optional[Dict[str, Any]]) -> JobPayload:
    """Validate raw payload data for job_type and return its payload object."""
    payload_cls = PAYLOAD_TYPES.get(job_type)
    if payload_cls is None:
        raise PayloadError(f"Unknown job type '{job_type}'")
    try:
        return payload_cls.from_dict(data)
    except TypeError as e:
        raise PayloadError(f"Invalid {job_type} payload: {e}")
