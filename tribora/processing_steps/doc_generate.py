"""
Document Generation Step
========================

Turns the latest transcript into a structured markdown document with a
short summary.
"""

from tribora.database.models import Document
from tribora.processing.payloads import DocGeneratePayload
from tribora.processing.results import StageResult
from tribora.utils.error_codes import ErrorCode

from .base import StageHandler


class DocGenerateHandler(StageHandler):
    job_type = 'doc_generate'
    payload_class = DocGeneratePayload

    def process(self, payload: DocGeneratePayload, ctx) -> StageResult:
        content = self.load_content(payload)
        transcript = self.latest_transcript(content.id)
        if transcript is None or not transcript.text.strip():
            return StageResult.failed(ErrorCode.MISSING_TRANSCRIPT, "No transcript to generate a document from",
                                      retryable=False)

        generator = self.require_capability('generator')
        generated = generator.generate(transcript.text, title=content.title, content_type=content.content_type)
        ctx.heartbeat()

        document = Document(
            content_id=content.id,
            org_id=content.org_id,
            markdown=generated.markdown,
            summary=generated.summary,
            format='markdown',
            model=generated.model,
        )
        self.deps.session.add(document)
        self.deps.session.flush()
        self.logger.info(f"[{content.id}] Generated document {document.id} ({len(generated.markdown)} chars)")

        return StageResult.ok({'document_id': document.id}, next_job=self.next_in_plan(content))
