"""
Content processing: record store, state machine, job payloads and intake.

Intake (processing.intake) is imported directly by callers; it depends on
the orchestration package.
"""

from .content_store import ContentStore
from .payloads import PAYLOAD_TYPES, PayloadError, parse_payload
from .results import NextJob, StageResult

__all__ = [
    'ContentStore',
    'PAYLOAD_TYPES',
    'PayloadError',
    'parse_payload',
    'NextJob',
    'StageResult',
]
