"""
Extract Text Steps
==================

Document uploads get their text straight from the file (pdfplumber for PDF,
word/document.xml for DOCX) and store it as the record's transcript, so
search treats documents and recordings alike.
"""

from tribora.database.models import Transcript
from tribora.processing.payloads import ExtractTextPdfPayload, ExtractTextDocxPayload
from tribora.processing.results import StageResult
from tribora.utils.error_codes import ErrorCode

from .base import StageHandler


class ExtractTextHandler(StageHandler):
    """Shared flow; subclasses pick the parser method and provider name."""

    provider = ''

    def extract(self, parser, data: bytes) -> str:
        raise NotImplementedError

    def process(self, payload, ctx) -> StageResult:
        content = self.load_content(payload)
        source_path = payload.storage_path or content.storage_path_raw
        if not source_path:
            return StageResult.failed(ErrorCode.MISSING_SOURCE, "Document has no stored file", retryable=False)

        parser = self.require_capability('parser')
        data = self.deps.storage.download(source_path)
        text = (self.extract(parser, data) or '').strip()
        if not text:
            return StageResult.failed(ErrorCode.EMPTY_RESULT, "No text could be extracted from document",
                                      retryable=False)

        transcript = Transcript(
            content_id=content.id,
            org_id=content.org_id,
            text=text,
            confidence=1.0,
            provider=self.provider,
            word_count=len(text.split()),
        )
        self.deps.session.add(transcript)
        self.deps.session.flush()
        self.logger.info(f"[{content.id}] Extracted {transcript.word_count} words from {source_path}")

        return StageResult.ok(
            {'transcript_id': transcript.id, 'word_count': transcript.word_count},
            next_job=self.next_in_plan(content),
        )


class ExtractTextPdfHandler(ExtractTextHandler):
    job_type = 'extract_text_pdf'
    payload_class = ExtractTextPdfPayload
    provider = 'pdf_parser'

    def extract(self, parser, data: bytes) -> str:
        return parser.extract_pdf(data)


class ExtractTextDocxHandler(ExtractTextHandler):
    job_type = 'extract_text_docx'
    payload_class = ExtractTextDocxPayload
    provider = 'docx_parser'

    def extract(self, parser, data: bytes) -> str:
        return parser.extract_docx(data)
