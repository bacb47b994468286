"""
External capabilities used by stage handlers.

base.py holds the interfaces; ffmpeg.py, document_parser.py and
model_server.py are the production adapters.
"""

from .base import (
    BlobStorage,
    MediaTranscoder,
    SampledFrame,
    SpeechToText,
    TranscriptionResult,
    DocumentParser,
    DocumentGenerator,
    GeneratedDocument,
    Embedder,
    VisionDescriber,
    VisualDescription,
    OcrEngine,
    OcrBlock,
)

__all__ = [
    'BlobStorage',
    'MediaTranscoder',
    'SampledFrame',
    'SpeechToText',
    'TranscriptionResult',
    'DocumentParser',
    'DocumentGenerator',
    'GeneratedDocument',
    'Embedder',
    'VisionDescriber',
    'VisualDescription',
    'OcrEngine',
    'OcrBlock',
]
