"""
Process Text Note Step
======================

Text notes arrive with their transcript already written at intake
(provider 'user_input'). This stage re-uses it, or rebuilds it from the
stored note file if missing, computes the word count on the plain-text form
of markdown notes, and hands over to document generation. No external
capability is called.
"""

import re

from tribora.database.models import Transcript
from tribora.processing.payloads import ProcessTextNotePayload
from tribora.processing.results import StageResult
from tribora.utils.error_codes import ErrorCode

from .base import StageHandler

USER_INPUT_PROVIDER = 'user_input'

_MD_IMAGE = re.compile(r'!\[([^\]]*)\]\([^)]*\)')
_MD_LINK = re.compile(r'\[([^\]]+)\]\([^)]*\)')
_MD_HEADING = re.compile(r'^[ \t]{0,3}#{1,6}[ \t]*', re.MULTILINE)
_MD_LIST = re.compile(r'^[ \t]*(?:[-*+]|\d+\.)[ \t]+', re.MULTILINE)
_MD_QUOTE = re.compile(r'^[ \t]*>[ \t]?', re.MULTILINE)
_MD_EMPHASIS = re.compile(r'(\*\*|__|\*|_|~~|`{1,3})')


def markdown_to_plain(text: str) -> str:
    """Strip common markdown syntax, keeping the readable text."""
    plain = _MD_IMAGE.sub(r'\1', text)
    plain = _MD_LINK.sub(r'\1', plain)
    plain = _MD_HEADING.sub('', plain)
    plain = _MD_LIST.sub('', plain)
    plain = _MD_QUOTE.sub('', plain)
    plain = _MD_EMPHASIS.sub('', plain)
    return re.sub(r'\n{3,}', '\n\n', plain).strip()


class ProcessTextNoteHandler(StageHandler):
    job_type = 'process_text_note'
    payload_class = ProcessTextNotePayload

    def process(self, payload: ProcessTextNotePayload, ctx) -> StageResult:
        content = self.load_content(payload)
        transcript = self.latest_transcript(content.id)

        if transcript is None:
            if not content.storage_path_raw:
                return StageResult.failed(ErrorCode.MISSING_SOURCE, "Text note has no body", retryable=False)
            body = self.deps.storage.download(content.storage_path_raw).decode('utf-8', errors='replace')
            transcript = Transcript(
                content_id=content.id,
                org_id=content.org_id,
                text=body,
                confidence=1.0,
                provider=USER_INPUT_PROVIDER,
                language=None,
            )
            self.deps.session.add(transcript)
            self.logger.info(f"[{content.id}] Rebuilt text note transcript from {content.storage_path_raw}")

        plain = markdown_to_plain(transcript.text) if payload.note_format == 'markdown' else transcript.text.strip()
        if not plain:
            return StageResult.failed(ErrorCode.EMPTY_RESULT, "Text note is empty", retryable=False)

        transcript.word_count = len(plain.split())
        self.deps.session.flush()

        return StageResult.ok(
            {'transcript_id': transcript.id, 'word_count': transcript.word_count},
            next_job=self.next_in_plan(content),
        )
