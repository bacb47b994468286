"""Job type -> stage handler class."""

from typing import Dict, Type

from .base import HandlerDeps, StageHandler
from .extract_audio import ExtractAudioHandler
from .transcribe import TranscribeHandler
from .extract_text import ExtractTextPdfHandler, ExtractTextDocxHandler
from .process_text_note import ProcessTextNoteHandler
from .doc_generate import DocGenerateHandler
from .generate_embeddings import GenerateEmbeddingsHandler
from .extract_frames import ExtractFramesHandler
from .collect_metrics import CollectMetricsHandler
from .generate_alerts import GenerateAlertsHandler

HANDLER_CLASSES: Dict[str, Type[StageHandler]] = {
    cls.job_type: cls for cls in (
        ExtractAudioHandler,
        TranscribeHandler,
        ExtractTextPdfHandler,
        ExtractTextDocxHandler,
        ProcessTextNoteHandler,
        DocGenerateHandler,
        GenerateEmbeddingsHandler,
        ExtractFramesHandler,
        CollectMetricsHandler,
        GenerateAlertsHandler,
    )
}


def build_handlers(deps: HandlerDeps) -> Dict[str, StageHandler]:
    return {job_type: cls(deps) for job_type, cls in HANDLER_CLASSES.items()}
