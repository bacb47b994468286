"""
Content models for the knowledge-capture pipeline.

Contains:
- Content: One uploaded or recorded asset and its pipeline status
- Transcript: Recognised or extracted text for a Content
- Document: Generated markdown document/summary for a Content
- Frame: Sampled video frame with visual description and OCR text
"""

from sqlalchemy import (
    Column, Integer, String, Float, DateTime, ForeignKey, Text, Index, Boolean,
    BigInteger, JSON
)
from sqlalchemy.orm import relationship

from .base import Base, utcnow, new_id


class Content(Base):
    """
    Central model representing one uploaded/recorded asset.

    Status moves through the pipeline state machine
    (tribora.processing.state.pipeline_state); the frame sub-pipeline keeps
    its own progress in visual_indexing_status so the two chains never write
    the same column.

    Attributes:
        id: UUID primary key
        org_id: Owning organization (unit of isolation)
        created_by: Creating user
        content_type: recording | video | audio | document | text
        file_type: File extension (mp4, mp3, pdf, docx, txt, md, ...)
        status: Pipeline status (uploading ... completed | error)
        error_message: Human readable failure shown to users when status=error
        storage_path_raw: Original upload location in blob storage
        storage_path_processed: Post-transform location (optional)
        visual_indexing_status: Frame chain status (pending/processing/completed/failed)
        deleted_at: Soft-delete marker, NULL while live
    """
    __tablename__ = 'content'

    id = Column(String(36), primary_key=True, default=new_id)
    org_id = Column(String(64), nullable=False)
    created_by = Column(String(64), nullable=True)

    title = Column(String(512), nullable=True)
    description = Column(Text, nullable=True)
    content_type = Column(String(20), nullable=False)
    file_type = Column(String(10), nullable=True)
    original_filename = Column(String(255), nullable=True)
    mime_type = Column(String(255), nullable=True)
    file_size = Column(BigInteger, nullable=True)

    status = Column(String(20), nullable=False, default='uploading')
    error_message = Column(Text, nullable=True)

    storage_path_raw = Column(String(1024), nullable=True)
    storage_path_processed = Column(String(1024), nullable=True)

    visual_indexing_status = Column(String(20), nullable=True)
    frame_count = Column(Integer, nullable=True)

    meta_data = Column(JSON, default=dict)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
    deleted_at = Column(DateTime(timezone=True), nullable=True)
    deleted_by = Column(String(64), nullable=True)
    deletion_reason = Column(Text, nullable=True)

    transcripts = relationship("Transcript", back_populates="content",
                               cascade="all, delete-orphan")
    documents = relationship("Document", back_populates="content",
                             cascade="all, delete-orphan")
    frames = relationship("Frame", back_populates="content",
                          cascade="all, delete-orphan",
                          order_by="Frame.frame_number")
    embedding_chunks = relationship("EmbeddingChunk", back_populates="content",
                                    cascade="all, delete-orphan")

    __table_args__ = (
        Index('idx_content_org_status', 'org_id', 'status'),
        Index('idx_content_org_type', 'org_id', 'content_type'),
        Index('idx_content_org_created', 'org_id', 'created_at'),
    )

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def __repr__(self):
        return f"<Content(id={self.id}, type={self.content_type}, status={self.status})>"


class Transcript(Base):
    """
    Text recognised from audio, extracted from a document, or authored directly.

    provider is 'user_input' for text notes (confidence fixed at 1.0), the
    parser name for documents, and the speech-to-text model otherwise.
    """
    __tablename__ = 'transcripts'

    id = Column(Integer, primary_key=True)
    content_id = Column(String(36), ForeignKey('content.id', ondelete='CASCADE'), nullable=False, index=True)
    org_id = Column(String(64), nullable=False)
    text = Column(Text, nullable=False)
    language = Column(String(10), nullable=True)
    confidence = Column(Float, nullable=True)
    provider = Column(String(50), nullable=False)
    word_count = Column(Integer, nullable=True)
    segments = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    content = relationship("Content", back_populates="transcripts")


class Document(Base):
    """Generated document (markdown body + short summary) for a Content."""
    __tablename__ = 'documents'

    id = Column(Integer, primary_key=True)
    content_id = Column(String(36), ForeignKey('content.id', ondelete='CASCADE'), nullable=False, index=True)
    org_id = Column(String(64), nullable=False)
    markdown = Column(Text, nullable=False)
    summary = Column(Text, nullable=True)
    format = Column(String(20), nullable=False, default='markdown')
    model = Column(String(100), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    content = relationship("Content", back_populates="documents")


class Frame(Base):
    """
    One sampled video frame.

    visual_description / scene_type / detected_elements come from the vision
    capability, ocr_text / ocr_confidence / ocr_blocks from OCR after
    confidence filtering. Both are independently queryable for multimodal
    search.
    """
    __tablename__ = 'video_frames'

    id = Column(Integer, primary_key=True)
    content_id = Column(String(36), ForeignKey('content.id', ondelete='CASCADE'), nullable=False)
    org_id = Column(String(64), nullable=False)
    frame_number = Column(Integer, nullable=False)
    frame_time_sec = Column(Float, nullable=False)
    storage_path = Column(String(1024), nullable=False)
    width = Column(Integer, nullable=True)
    height = Column(Integer, nullable=True)
    size_bytes = Column(Integer, nullable=True)
    is_scene_change = Column(Boolean, default=False)

    visual_description = Column(Text, nullable=True)
    scene_type = Column(String(20), nullable=True)
    detected_elements = Column(JSON, nullable=True)

    ocr_text = Column(Text, nullable=True)
    ocr_confidence = Column(Float, nullable=True)
    ocr_blocks = Column(JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    content = relationship("Content", back_populates="frames")

    __table_args__ = (
        Index('idx_video_frames_content_frame', 'content_id', 'frame_number'),
        Index('idx_video_frames_org', 'org_id'),
    )
