"""
Database Models for the Content Processing Pipeline
===================================================

## Core Processing Flow:

1. **Intake** (processing/intake.py)
   - Upload/record creates a Content in 'uploading', stores the raw bytes,
     enqueues the first Job for its content type

2. **Extraction** (processing_steps/)
   - extract_audio.py: video → mp3
   - extract_text.py: pdf/docx → Transcript
   - process_text_note.py: authored note → Transcript

3. **Transcription / Document / Embeddings** (processing_steps/)
   - transcribe.py → Transcript
   - doc_generate.py → Document
   - generate_embeddings.py → EmbeddingChunk rows, status 'completed'

4. **Frames** (processing_steps/extract_frames.py, video only)
   - Frame rows with visual descriptions and OCR text

## Model Relationships:

- **Content** has many Transcripts, Documents, Frames, EmbeddingChunks
  (all cascade on hard delete)
- **Job** references Content by content_id (no FK; jobs outlive purges as history)
- **StorageMetric** / **Alert** are written by scheduled jobs
"""

from tribora.database.models.base import Base, utcnow, new_id
from tribora.database.models.content import Content, Transcript, Document, Frame
from tribora.database.models.embeddings import EmbeddingChunk
from tribora.database.models.jobs import Job
from tribora.database.models.metrics import StorageMetric, Alert


__all__ = [
    "Base",
    "utcnow",
    "new_id",
    "Content",
    "Transcript",
    "Document",
    "Frame",
    "EmbeddingChunk",
    "Job",
    "StorageMetric",
    "Alert",
]
