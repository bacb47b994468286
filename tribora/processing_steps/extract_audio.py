"""
Extract Audio Step
==================

Pulls the audio track out of an uploaded video so the transcription stage
works on a compact mp3. The audio is stored next to the source
(<source stem>.mp3) and recorded in the record's metadata as audio_path.
"""

from tribora.database.models import utcnow
from tribora.processing.payloads import ExtractAudioPayload
from tribora.processing.results import StageResult
from tribora.storage.content_storage import audio_path_for, extension_of
from tribora.utils.error_codes import ErrorCode

from .base import StageHandler


class ExtractAudioHandler(StageHandler):
    job_type = 'extract_audio'
    payload_class = ExtractAudioPayload

    def process(self, payload: ExtractAudioPayload, ctx) -> StageResult:
        content = self.load_content(payload)
        source_path = payload.storage_path or content.storage_path_raw
        if not source_path:
            return StageResult.failed(ErrorCode.MISSING_SOURCE, "Video has no stored source file", retryable=False)

        transcoder = self.require_capability('transcoder')
        video = self.deps.storage.download(source_path)
        self.logger.info(f"[{content.id}] Extracting audio from {source_path} ({len(video)} bytes)")

        audio = transcoder.extract_audio(video, extension_of(source_path) or content.file_type)
        if not audio:
            return StageResult.failed(ErrorCode.EMPTY_RESULT, "Audio extraction produced no data", retryable=False)
        ctx.heartbeat()

        audio_path = audio_path_for(source_path)
        self.deps.storage.upload(audio_path, audio, 'audio/mpeg')
        self.deps.contents.merge_metadata(content.id, {
            'audio_path': audio_path,
            'extracted_at': utcnow().isoformat(),
        })
        self.deps.contents.attach_storage_path(content.id, 'processed', audio_path)

        return StageResult.ok(
            {'audio_path': audio_path, 'audio_bytes': len(audio)},
            next_job=self.next_in_plan(content, storage_path=audio_path),
        )
