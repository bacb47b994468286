"""
Transcribe Step
===============

Speech-to-text for audio, recordings and (via extract_audio) video. Reads
the audio from the payload's storage_path, falling back to the extracted
audio_path in metadata and then the raw upload.
"""

from tribora.database.models import Transcript
from tribora.processing.payloads import TranscribePayload
from tribora.processing.results import StageResult
from tribora.storage.content_storage import extension_of
from tribora.utils.error_codes import ErrorCode

from .base import StageHandler


class TranscribeHandler(StageHandler):
    job_type = 'transcribe'
    payload_class = TranscribePayload

    def process(self, payload: TranscribePayload, ctx) -> StageResult:
        content = self.load_content(payload)
        audio_path = (payload.storage_path
                      or (content.meta_data or {}).get('audio_path')
                      or content.storage_path_raw)
        if not audio_path:
            return StageResult.failed(ErrorCode.MISSING_SOURCE, "No audio to transcribe", retryable=False)

        speech = self.require_capability('speech')
        audio = self.deps.storage.download(audio_path)
        self.logger.info(f"[{content.id}] Transcribing {audio_path} ({len(audio)} bytes)")
        result = speech.transcribe(audio, extension_of(audio_path) or content.file_type, payload.language)
        ctx.heartbeat()

        text = (result.text or '').strip()
        if not text:
            return StageResult.failed(ErrorCode.NO_SPEECH_DETECTED, "Transcription returned no speech",
                                      retryable=False)

        transcript = Transcript(
            content_id=content.id,
            org_id=content.org_id,
            text=text,
            language=result.language,
            confidence=result.confidence,
            provider=result.provider,
            word_count=len(text.split()),
            segments=result.segments or None,
        )
        self.deps.session.add(transcript)
        self.deps.session.flush()

        return StageResult.ok(
            {'transcript_id': transcript.id, 'word_count': transcript.word_count,
             'language': transcript.language},
            next_job=self.next_in_plan(content),
        )
