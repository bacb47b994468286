"""
Embedding models for semantic search.

Contains:
- EmbeddingChunk: A span of transcript/document text and its embedding vector
"""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Text, Index
from sqlalchemy.orm import relationship
from pgvector.sqlalchemy import Vector

from .base import Base, utcnow


class EmbeddingChunk(Base):
    """
    Retrieval chunk derived from a Content's transcript or generated document.

    start_char/end_char index into the source text so search results can be
    highlighted in place.
    """
    __tablename__ = 'embedding_chunks'

    id = Column(Integer, primary_key=True)
    content_id = Column(String(36), ForeignKey('content.id', ondelete='CASCADE'), nullable=False)
    org_id = Column(String(64), nullable=False)
    chunk_index = Column(Integer, nullable=False)
    source = Column(String(20), nullable=False)  # 'transcript' | 'document'
    text = Column(Text, nullable=False)
    start_char = Column(Integer, nullable=True)
    end_char = Column(Integer, nullable=True)
    embedding = Column(Vector(), nullable=True)
    model = Column(String(100), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    content = relationship("Content", back_populates="embedding_chunks")

    __table_args__ = (
        Index('idx_embedding_chunks_content', 'content_id', 'chunk_index'),
        Index('idx_embedding_chunks_org', 'org_id'),
    )
