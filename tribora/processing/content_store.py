"""
Content Record Store - CRUD and lifecycle operations on Content.

All reads that take an org_id filter by it; a record from another
organization is indistinguishable from a missing one. Methods flush but do
not commit, so callers can group them with queue operations in one
transaction.
"""

from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select, func, or_
from sqlalchemy.orm import Session

from tribora.database.models import Content, utcnow
from tribora.processing.state.pipeline_state import ContentStatus
from tribora.utils.error_codes import ContentNotFoundError, StorageError
from tribora.utils.logger import setup_worker_logger

logger = setup_worker_logger('content_store')

SORT_ORDERS = {
    'recent': (Content.created_at.desc(), Content.id.desc()),
    'oldest': (Content.created_at.asc(), Content.id.asc()),
    'title': (Content.title.asc(), Content.id.asc()),
}


class ContentStore:
    """Content record persistence for one session."""

    def __init__(self, session: Session, storage=None):
        self.session = session
        self.storage = storage

    def create(self, org_id: str, created_by: Optional[str], content_type: str,
               title: Optional[str] = None, description: Optional[str] = None,
               file_type: Optional[str] = None, original_filename: Optional[str] = None,
               mime_type: Optional[str] = None, file_size: Optional[int] = None,
               metadata: Optional[Dict[str, Any]] = None) -> Content:
        """Create a record in 'uploading'."""
        content = Content(
            org_id=org_id,
            created_by=created_by,
            content_type=content_type,
            title=title,
            description=description,
            file_type=file_type,
            original_filename=original_filename,
            mime_type=mime_type,
            file_size=file_size,
            status=ContentStatus.UPLOADING.value,
            meta_data=dict(metadata or {}),
        )
        self.session.add(content)
        self.session.flush()
        logger.debug(f"Created content {content.id} ({content_type}) for org {org_id}")
        return content

    def get(self, content_id: str, org_id: Optional[str] = None,
            include_deleted: bool = False) -> Optional[Content]:
        query = select(Content).where(Content.id == content_id)
        if org_id is not None:
            query = query.where(Content.org_id == org_id)
        if not include_deleted:
            query = query.where(Content.deleted_at.is_(None))
        return self.session.execute(query).scalars().first()

    def require(self, content_id: str, org_id: Optional[str] = None,
                include_deleted: bool = False) -> Content:
        content = self.get(content_id, org_id, include_deleted)
        if content is None:
            raise ContentNotFoundError(f"Content {content_id} not found")
        return content

    def update_status(self, content_id: str, status: str) -> Content:
        """Set status unconditionally; transition checks belong to the caller."""
        content = self.require(content_id, include_deleted=True)
        content.status = status
        if status != ContentStatus.ERROR.value:
            content.error_message = None
        content.updated_at = utcnow()
        self.session.flush()
        return content

    def set_error(self, content_id: str, message: str) -> Content:
        content = self.require(content_id, include_deleted=True)
        content.status = ContentStatus.ERROR.value
        content.error_message = message
        content.updated_at = utcnow()
        self.session.flush()
        return content

    def set_visual_status(self, content_id: str, status: str, frame_count: Optional[int] = None) -> Content:
        content = self.require(content_id, include_deleted=True)
        content.visual_indexing_status = status
        if frame_count is not None:
            content.frame_count = frame_count
        content.updated_at = utcnow()
        self.session.flush()
        return content

    def attach_storage_path(self, content_id: str, kind: str, path: str) -> Content:
        """kind is 'raw' or 'processed'."""
        if kind not in ('raw', 'processed'):
            raise ValueError(f"Unknown storage path kind '{kind}'")
        content = self.require(content_id, include_deleted=True)
        setattr(content, f'storage_path_{kind}', path)
        content.updated_at = utcnow()
        self.session.flush()
        return content

    def merge_metadata(self, content_id: str, values: Dict[str, Any]) -> Content:
        content = self.require(content_id, include_deleted=True)
        merged = dict(content.meta_data or {})
        merged.update(values)
        # Reassign so the JSON column is flagged dirty
        content.meta_data = merged
        content.updated_at = utcnow()
        self.session.flush()
        return content

    def soft_delete(self, content_id: str, org_id: str, reason: Optional[str] = None,
                    deleted_by: Optional[str] = None) -> Content:
        content = self.require(content_id, org_id)
        content.deleted_at = utcnow()
        content.deleted_by = deleted_by
        content.deletion_reason = reason
        self.session.flush()
        logger.info(f"Soft-deleted content {content_id}")
        return content

    def restore(self, content_id: str, org_id: str) -> Content:
        content = self.require(content_id, org_id, include_deleted=True)
        content.deleted_at = None
        content.deleted_by = None
        content.deletion_reason = None
        self.session.flush()
        return content

    def delete(self, content_id: str) -> None:
        """Hard delete the row and its children, without touching blob storage."""
        content = self.session.get(Content, content_id)
        if content is not None:
            self.session.delete(content)
            self.session.flush()

    def blob_paths(self, content: Content) -> List[str]:
        paths = [content.storage_path_raw, content.storage_path_processed,
                 (content.meta_data or {}).get('audio_path')]
        paths.extend(frame.storage_path for frame in content.frames)
        return [p for p in dict.fromkeys(paths) if p]

    def purge(self, content_id: str, org_id: str) -> int:
        """Hard delete a record, its children and its blobs; returns blobs removed."""
        content = self.require(content_id, org_id, include_deleted=True)
        removed = 0
        if self.storage is not None:
            for path in self.blob_paths(content):
                try:
                    self.storage.remove(path)
                    removed += 1
                except StorageError as e:
                    logger.warning(f"Could not remove blob {path} for content {content_id}: {e}")
        self.session.delete(content)
        self.session.flush()
        logger.info(f"Purged content {content_id} ({removed} blob(s) removed)")
        return removed

    def list(self, org_id: str, content_type: Optional[str] = None, status: Optional[str] = None,
             search: Optional[str] = None, page: int = 1, limit: int = 20,
             include_deleted: bool = False, sort: str = 'recent') -> Tuple[List[Content], int]:
        """Paginated org-scoped listing; returns (items, total)."""
        filters = [Content.org_id == org_id]
        if not include_deleted:
            filters.append(Content.deleted_at.is_(None))
        if content_type:
            filters.append(Content.content_type == content_type)
        if status:
            filters.append(Content.status == status)
        if search:
            pattern = f"%{search}%"
            filters.append(or_(
                Content.title.ilike(pattern),
                Content.description.ilike(pattern),
                Content.original_filename.ilike(pattern),
            ))

        total = self.session.execute(select(func.count(Content.id)).where(*filters)).scalar_one()

        page = max(page, 1)
        limit = max(min(limit, 100), 1)
        order = SORT_ORDERS.get(sort, SORT_ORDERS['recent'])
        query = select(Content).where(*filters).order_by(*order).offset((page - 1) * limit).limit(limit)
        items = list(self.session.execute(query).scalars().all())
        return items, total
