"""
Tests for ContentIntake: validation, compensation on failure, batch
uploads, recordings and text notes.
"""

import pytest
from sqlalchemy import select

from tribora.database.models import Content, Job, Transcript
from tribora.processing.intake import ContentIntake, MB
from tribora.utils.error_codes import UploadError, ValidationError

ORG = 'org-acme'
USER = 'user-1'


class TestUploadValidation:
    """Uploads are rejected before anything is written"""

    @pytest.fixture(autouse=True)
    def _setup(self, session, storage, config):
        self.session = session
        self.storage = storage
        self.intake = ContentIntake(session, storage, config)

    def test_oversized_video_rejected(self):
        """A 600MB video exceeds the 500MB limit and creates no record"""
        with pytest.raises(ValidationError, match='500MB'):
            self.intake.validate_upload('all-hands.mp4', 600 * MB)
        assert self.session.execute(select(Content)).first() is None
        assert self.storage.objects == {}

    def test_limits_per_content_type(self):
        assert self.intake.validate_upload('a.mp3', 100 * MB) == ('audio', 'mp3')
        with pytest.raises(ValidationError, match='100MB'):
            self.intake.validate_upload('a.mp3', 100 * MB + 1)
        with pytest.raises(ValidationError, match='50MB'):
            self.intake.validate_upload('spec.pdf', 51 * MB)

    def test_empty_file_rejected(self):
        with pytest.raises(ValidationError):
            self.intake.upload_file(ORG, USER, 'empty.mp3', b'')

    def test_unsupported_type(self):
        with pytest.raises(ValidationError, match='Unsupported'):
            self.intake.validate_upload('archive.zip', 10, mime_type='application/zip')

    def test_mime_type_fallback(self):
        """Files without a known extension resolve through their MIME type"""
        assert self.intake.validate_upload('upload', 10, mime_type='audio/mpeg') == ('audio', 'mp3')
        assert self.intake.resolve_file_type('clip.MOV') == 'mov'

    def test_recording_content_type_rejected(self):
        with pytest.raises(ValidationError, match='record'):
            self.intake.validate_upload('screen.webm', 10, content_type='recording')

    def test_declared_type_must_match(self):
        with pytest.raises(ValidationError):
            self.intake.validate_upload('talk.mp3', 10, content_type='video')


class TestIngest:
    """Successful and failed ingestion"""

    @pytest.fixture(autouse=True)
    def _setup(self, session, storage, config):
        self.session = session
        self.storage = storage
        self.intake = ContentIntake(session, storage, config)

    def test_upload_creates_record_blob_and_job(self):
        result = self.intake.upload_file(ORG, USER, 'Q3 Review (final).mp4', b'\x00' * 100,
                                         description='Quarterly review', metadata={'source': 'web'})

        content = self.session.get(Content, result.content_id)
        assert result.content_type == 'video'
        assert result.storage_path == f"{ORG}/videos/{content.id}.mp4"
        assert result.signed_url.startswith('https://blobs.test/')
        assert content.original_filename == 'Q3_Review__final_.mp4'
        assert content.title == 'Q3_Review__final_'
        assert content.file_size == 100
        assert content.mime_type == 'video/mp4'
        assert content.meta_data == {'source': 'web'}
        assert content.storage_path_raw == result.storage_path
        assert self.storage.objects[result.storage_path] == b'\x00' * 100

        jobs = self.session.execute(select(Job).order_by(Job.id)).scalars().all()
        assert [job.type for job in jobs] == ['extract_audio', 'extract_frames']
        assert jobs[0].id == result.job_id
        assert jobs[0].payload['storage_path'] == result.storage_path

    def test_storage_failure_leaves_nothing_behind(self):
        """If the bytes cannot be stored the record is removed and UploadError raised"""
        self.storage.fail_uploads = True

        with pytest.raises(UploadError):
            self.intake.upload_file(ORG, USER, 'talk.mp3', b'ID3' + b'\x00' * 64)

        self.session.expire_all()
        assert self.session.execute(select(Content)).first() is None
        assert self.session.execute(select(Job)).first() is None

    def test_failure_after_upload_removes_blob(self, monkeypatch):
        def refuse(content, **extra):
            raise ValidationError('queue is closed')
        monkeypatch.setattr(self.intake.service, 'start', refuse)

        with pytest.raises(UploadError):
            self.intake.upload_file(ORG, USER, 'talk.mp3', b'ID3' + b'\x00' * 64)

        assert len(self.storage.removed) == 1
        assert self.storage.objects == {}
        self.session.expire_all()
        assert self.session.execute(select(Content)).first() is None

    def test_recording(self):
        result = self.intake.record(ORG, USER, b'\x1a\x45\xdf\xa3' * 32, title='Bug repro',
                                    duration_seconds=42.5)

        content = self.session.get(Content, result.content_id)
        assert content.content_type == 'recording'
        assert result.storage_path == f"{ORG}/recordings/{content.id}/raw.webm"
        assert content.meta_data['duration_seconds'] == 42.5
        assert self.session.get(Job, result.job_id).type == 'transcribe'
        assert content.visual_indexing_status is None

    def test_text_note_writes_transcript(self):
        result = self.intake.create_text_note(ORG, USER, 'Deploy notes', 'Roll out to staging first.')

        transcript = self.session.execute(
            select(Transcript).where(Transcript.content_id == result.content_id)).scalar_one()
        assert transcript.provider == 'user_input'
        assert transcript.confidence == 1.0
        assert result.file_type == 'txt'
        assert self.session.get(Job, result.job_id).payload['note_format'] == 'plain'

    def test_text_note_validation(self):
        with pytest.raises(ValidationError):
            self.intake.create_text_note(ORG, USER, 'Empty', '   ')
        with pytest.raises(ValidationError):
            self.intake.create_text_note(ORG, USER, 'Odd', 'body', note_format='html')


class TestBatchUpload:
    """Batch uploads: 1..max files, each succeeds or fails on its own"""

    @pytest.fixture(autouse=True)
    def _setup(self, session, storage, config):
        self.session = session
        self.intake = ContentIntake(session, storage, config)

    def test_mixed_batch(self):
        batch = self.intake.upload_batch(ORG, USER, [
            {'filename': 'intro.mp3', 'data': b'ID3' + b'\x00' * 16},
            {'filename': 'malware.exe', 'data': b'MZ'},
            {'filename': 'handbook.docx', 'data': b'PK\x03\x04' + b'\x00' * 16, 'title': 'Handbook'},
        ])

        assert batch.summary == {'total': 3, 'succeeded': 2, 'failed': 1}
        assert batch.results[1]['success'] is False
        assert 'Unsupported' in batch.results[1]['error']
        docx = self.session.get(Content, batch.results[2]['content_id'])
        assert docx.title == 'Handbook'
        assert self.session.get(Job, batch.results[2]['job_id']).type == 'extract_text_docx'

    def test_batch_limits(self):
        with pytest.raises(ValidationError):
            self.intake.upload_batch(ORG, USER, [])
        too_many = [{'filename': f'{i}.txt', 'data': b'x'} for i in range(11)]
        with pytest.raises(ValidationError, match='Maximum 10'):
            self.intake.upload_batch(ORG, USER, too_many)
