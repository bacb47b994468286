"""
Generate Embeddings Step
========================

Chunks the transcript and the generated document, embeds the chunks in
batches and replaces any chunks previously stored for the record, so
re-running the stage never duplicates search entries.
"""

import numpy as np
from sqlalchemy import delete, select

from tribora.database.models import Document, EmbeddingChunk
from tribora.processing.payloads import GenerateEmbeddingsPayload
from tribora.processing.results import StageResult
from tribora.utils.chunk_utils import create_text_chunks, batched
from tribora.utils.error_codes import ErrorCode

from .base import StageHandler


class GenerateEmbeddingsHandler(StageHandler):
    job_type = 'generate_embeddings'
    payload_class = GenerateEmbeddingsPayload

    def __init__(self, deps):
        super().__init__(deps)
        embedding_config = self.config.get('embeddings', {})
        self.chunk_size = embedding_config.get('chunk_size', 500)
        self.chunk_overlap = embedding_config.get('chunk_overlap', 50)
        self.batch_size = embedding_config.get('batch_size', 20)

    def _latest_document(self, content_id: str):
        query = (select(Document).where(Document.content_id == content_id)
                 .order_by(Document.created_at.desc(), Document.id.desc()).limit(1))
        return self.deps.session.execute(query).scalars().first()

    def process(self, payload: GenerateEmbeddingsPayload, ctx) -> StageResult:
        content = self.load_content(payload)
        sources = []
        transcript = self.latest_transcript(content.id)
        if transcript is not None and transcript.text.strip():
            sources.append(('transcript', transcript.text))
        document = self._latest_document(content.id)
        if document is not None and document.markdown.strip():
            sources.append(('document', document.markdown))
        if not sources:
            return StageResult.failed(ErrorCode.MISSING_TRANSCRIPT, "Nothing to embed", retryable=False)

        chunks = []
        for source, text in sources:
            for chunk in create_text_chunks(text, self.chunk_size, self.chunk_overlap):
                chunk['source'] = source
                chunks.append(chunk)

        embedder = self.require_capability('embedder')
        vectors = []
        for batch in batched(chunks, self.batch_size):
            vectors.extend(embedder.embed([chunk['text'] for chunk in batch]))
            ctx.heartbeat()

        if len(vectors) != len(chunks) or len({len(vector) for vector in vectors}) != 1:
            return StageResult.failed(ErrorCode.TEMPORARY_FAILURE,
                                      f"Embedder returned malformed vectors ({len(vectors)} for {len(chunks)} chunks)")
        matrix = np.asarray(vectors, dtype=np.float32)
        if not np.isfinite(matrix).all():
            return StageResult.failed(ErrorCode.TEMPORARY_FAILURE, "Embedder returned non-finite values")

        self.deps.session.execute(delete(EmbeddingChunk).where(EmbeddingChunk.content_id == content.id))
        for index, (chunk, vector) in enumerate(zip(chunks, matrix)):
            self.deps.session.add(EmbeddingChunk(
                content_id=content.id,
                org_id=content.org_id,
                chunk_index=index,
                source=chunk['source'],
                text=chunk['text'],
                start_char=chunk['start_char'],
                end_char=chunk['end_char'],
                embedding=vector,
                model=embedder.model,
            ))
        self.deps.session.flush()
        self.logger.info(f"[{content.id}] Stored {len(chunks)} embedding chunk(s)")

        return StageResult.ok({'chunks': len(chunks), 'dimensions': int(matrix.shape[1])},
                              next_job=self.next_in_plan(content))
