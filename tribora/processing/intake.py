"""
Content intake - the upload / record / text-note entry points.

Every entry point follows the same sequence:

1. Validate (type, size) before anything is written
2. Create the record in 'uploading' and commit it
3. Upload the bytes, attach the raw path, mark 'uploaded', enqueue the first
   stage and set its status, all in one commit
4. Hand back a signed URL for the stored file

If step 3 fails, the record and any uploaded bytes are removed before
UploadError is raised, so a failed upload leaves nothing behind.
"""

from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from tribora.database.models import Content, Transcript
from tribora.orchestration.pipeline_service import PipelineService
from tribora.processing.content_store import ContentStore
from tribora.processing.state.pipeline_state import ContentStatus
from tribora.storage.content_storage import raw_path, sanitize_filename
from tribora.utils.error_codes import StorageError, UploadError, ValidationError
from tribora.utils.logger import setup_worker_logger

logger = setup_worker_logger('intake')

MB = 1024 * 1024

FILE_TYPE_TO_CONTENT_TYPE = {
    'mp4': 'video', 'mov': 'video', 'webm': 'video', 'avi': 'video',
    'mp3': 'audio', 'wav': 'audio', 'm4a': 'audio', 'ogg': 'audio',
    'pdf': 'document', 'docx': 'document', 'doc': 'document',
    'txt': 'text', 'md': 'text',
}

MIME_TYPE_TO_FILE_TYPE = {
    'video/mp4': 'mp4',
    'video/quicktime': 'mov',
    'video/webm': 'webm',
    'video/x-msvideo': 'avi',
    'audio/mpeg': 'mp3',
    'audio/wav': 'wav',
    'audio/x-wav': 'wav',
    'audio/mp4': 'm4a',
    'audio/x-m4a': 'm4a',
    'audio/ogg': 'ogg',
    'application/pdf': 'pdf',
    'application/vnd.openxmlformats-officedocument.wordprocessingml.document': 'docx',
    'application/msword': 'doc',
    'text/plain': 'txt',
    'text/markdown': 'md',
}

FILE_TYPE_TO_MIME_TYPE = {file_type: mime for mime, file_type in reversed(list(MIME_TYPE_TO_FILE_TYPE.items()))}

DEFAULT_SIZE_LIMITS_MB = {
    'recording': 500,
    'video': 500,
    'audio': 100,
    'document': 50,
    'text': 1,
}


@dataclass
class UploadResult:
    content_id: str
    content_type: str
    file_type: str
    status: str
    job_id: Optional[int]
    storage_path: str
    signed_url: Optional[str] = None
    title: Optional[str] = None


@dataclass
class BatchUploadResult:
    results: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def summary(self) -> Dict[str, int]:
        succeeded = sum(1 for r in self.results if r['success'])
        return {'total': len(self.results), 'succeeded': succeeded, 'failed': len(self.results) - succeeded}


class ContentIntake:
    """Creates content records from uploads and starts their pipelines."""

    def __init__(self, session: Session, storage, config: Optional[Dict[str, Any]] = None):
        self.session = session
        self.storage = storage
        self.config = config or {}
        upload_config = self.config.get('upload', {})
        self.max_files = upload_config.get('max_files_per_request', 10)
        self.size_limits_mb = dict(DEFAULT_SIZE_LIMITS_MB, **upload_config.get('size_limits_mb', {}))
        self.signed_url_ttl = self.config.get('storage', {}).get('s3', {}).get('signed_url_ttl_seconds', 3600)
        self.contents = ContentStore(session, storage)
        self.service = PipelineService(session, self.config, contents=self.contents)

    # Validation

    def resolve_file_type(self, filename: str, mime_type: Optional[str] = None) -> str:
        ext = PurePosixPath(filename or '').suffix.lower().lstrip('.')
        if ext in FILE_TYPE_TO_CONTENT_TYPE:
            return ext
        if mime_type:
            file_type = MIME_TYPE_TO_FILE_TYPE.get(mime_type.split(';')[0].strip().lower())
            if file_type:
                return file_type
        raise ValidationError(f"Unsupported file type: {mime_type or ext or filename}")

    def check_size(self, content_type: str, size: int) -> None:
        if size <= 0:
            raise ValidationError("File is empty")
        limit_mb = self.size_limits_mb[content_type]
        if size > limit_mb * MB:
            raise ValidationError(f"File size exceeds limit of {limit_mb}MB for {content_type} files")

    def validate_upload(self, filename: str, size: int, mime_type: Optional[str] = None,
                        content_type: Optional[str] = None) -> Tuple[str, str]:
        """Return (content_type, file_type) or raise ValidationError."""
        if content_type == 'recording':
            raise ValidationError("Recordings must be submitted through the record action")
        file_type = self.resolve_file_type(filename, mime_type)
        resolved = FILE_TYPE_TO_CONTENT_TYPE[file_type]
        if content_type and content_type != resolved:
            raise ValidationError(f"File type {file_type} is not valid for {content_type} content")
        self.check_size(resolved, size)
        return resolved, file_type

    # Entry points

    def upload_file(self, org_id: str, user_id: str, filename: str, data: bytes,
                    mime_type: Optional[str] = None, title: Optional[str] = None,
                    description: Optional[str] = None, metadata: Optional[Dict[str, Any]] = None,
                    content_type: Optional[str] = None) -> UploadResult:
        content_type, file_type = self.validate_upload(filename, len(data), mime_type, content_type)
        clean_name = sanitize_filename(filename)
        return self._ingest(
            org_id, user_id, content_type, file_type, data,
            title=title or PurePosixPath(clean_name).stem,
            description=description,
            original_filename=clean_name,
            mime_type=mime_type or FILE_TYPE_TO_MIME_TYPE.get(file_type),
            metadata=metadata,
        )

    def upload_batch(self, org_id: str, user_id: str, files: List[Dict[str, Any]]) -> BatchUploadResult:
        """Upload 1..max_files files; each succeeds or fails on its own."""
        if not files:
            raise ValidationError("No files provided")
        if len(files) > self.max_files:
            raise ValidationError(f"Maximum {self.max_files} files per upload")

        batch = BatchUploadResult()
        for item in files:
            filename = item.get('filename', '')
            try:
                result = self.upload_file(
                    org_id, user_id, filename, item['data'],
                    mime_type=item.get('mime_type'),
                    title=item.get('title'),
                    description=item.get('description'),
                    metadata=item.get('metadata'),
                )
                batch.results.append({'filename': filename, 'success': True, 'content_id': result.content_id,
                                      'content_type': result.content_type, 'job_id': result.job_id})
            except (ValidationError, UploadError) as e:
                logger.warning(f"Batch upload of {filename} failed: {e}")
                batch.results.append({'filename': filename, 'success': False, 'error': str(e)})
        logger.info(f"Batch upload for org {org_id}: {batch.summary}")
        return batch

    def record(self, org_id: str, user_id: str, data: bytes, file_type: str = 'webm',
               title: Optional[str] = None, description: Optional[str] = None,
               duration_seconds: Optional[float] = None,
               metadata: Optional[Dict[str, Any]] = None) -> UploadResult:
        """Screen recording captured in the app."""
        file_type = file_type.lower().lstrip('.')
        self.check_size('recording', len(data))
        meta = dict(metadata or {})
        if duration_seconds is not None:
            meta['duration_seconds'] = duration_seconds
        return self._ingest(
            org_id, user_id, 'recording', file_type, data,
            title=title or 'Untitled recording',
            description=description,
            original_filename=f"recording.{file_type}",
            mime_type=FILE_TYPE_TO_MIME_TYPE.get(file_type, 'video/webm'),
            metadata=meta,
        )

    def create_text_note(self, org_id: str, user_id: str, title: str, body: str,
                         note_format: str = 'plain', metadata: Optional[Dict[str, Any]] = None) -> UploadResult:
        """Authored note: stored as a file, transcript written immediately."""
        if note_format not in ('plain', 'markdown'):
            raise ValidationError(f"Unknown note format '{note_format}'")
        if not (title or '').strip():
            raise ValidationError("Title is required")
        if not (body or '').strip():
            raise ValidationError("Note body is empty")
        data = body.encode('utf-8')
        self.check_size('text', len(data))
        file_type = 'md' if note_format == 'markdown' else 'txt'

        def write_transcript(content: Content):
            self.session.add(Transcript(
                content_id=content.id,
                org_id=content.org_id,
                text=body,
                confidence=1.0,
                provider='user_input',
                word_count=len(body.split()),
            ))

        return self._ingest(
            org_id, user_id, 'text', file_type, data,
            title=title.strip(),
            original_filename=sanitize_filename(f"{title.strip()}.{file_type}"),
            mime_type=FILE_TYPE_TO_MIME_TYPE[file_type],
            metadata=dict(metadata or {}, note_format=note_format),
            before_start=write_transcript,
            start_payload={'note_format': note_format},
        )

    # Shared flow

    def _ingest(self, org_id: str, user_id: str, content_type: str, file_type: str, data: bytes,
                title: Optional[str] = None, description: Optional[str] = None,
                original_filename: Optional[str] = None, mime_type: Optional[str] = None,
                metadata: Optional[Dict[str, Any]] = None, before_start=None,
                start_payload: Optional[Dict[str, Any]] = None) -> UploadResult:
        try:
            content = self.contents.create(
                org_id, user_id, content_type,
                title=title, description=description, file_type=file_type,
                original_filename=original_filename, mime_type=mime_type,
                file_size=len(data), metadata=metadata,
            )
            content_id = content.id
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            raise UploadError(f"Could not create content record: {e}") from e

        path = raw_path(org_id, content_id, content_type, file_type)
        uploaded = False
        try:
            self.storage.upload(path, data, mime_type)
            uploaded = True
            self.contents.attach_storage_path(content_id, 'raw', path)
            self.contents.update_status(content_id, ContentStatus.UPLOADED.value)
            content = self.contents.require(content_id)
            if before_start is not None:
                before_start(content)
            job = self.service.start(content, **(start_payload or {}))
            job_id, status = job.id, content.status
            self.session.commit()
        except (StorageError, SQLAlchemyError, ValidationError) as e:
            logger.error(f"Upload of {content_type} {content_id} failed, cleaning up: {e}")
            self._compensate(content_id, path if uploaded else None)
            raise UploadError(f"Upload failed: {e}") from e

        signed_url = None
        try:
            signed_url = self.storage.create_signed_url(path, self.signed_url_ttl)
        except StorageError as e:
            logger.warning(f"Could not sign URL for {path}: {e}")

        logger.info(f"Ingested {content_type} {content_id} for org {org_id} ({len(data)} bytes)")
        return UploadResult(
            content_id=content_id,
            content_type=content_type,
            file_type=file_type,
            status=status,
            job_id=job_id,
            storage_path=path,
            signed_url=signed_url,
            title=title,
        )

    def _compensate(self, content_id: str, path: Optional[str]) -> None:
        self.session.rollback()
        if path:
            try:
                self.storage.remove(path)
            except StorageError as e:
                logger.error(f"Could not remove {path} during cleanup: {e}")
        try:
            self.contents.delete(content_id)
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(f"Could not delete content {content_id} during cleanup: {e}")
