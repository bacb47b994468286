"""Utilities for splitting transcript/document text into embedding chunks."""

import re
from typing import Dict, List, Tuple
import logging

logger = logging.getLogger(__name__)

_SENTENCE_END = re.compile(r'(?<=[.!?])\s+|\n{2,}')


def split_sentence_spans(text: str) -> List[Tuple[int, int]]:
    """Return (start, end) character spans of the non-empty sentences in text."""
    spans = []
    start = 0
    for match in _SENTENCE_END.finditer(text):
        end = match.start()
        if text[start:end].strip():
            spans.append((start, end))
        start = match.end()
    if text[start:].strip():
        spans.append((start, len(text)))
    return spans


def create_text_chunks(text: str, chunk_size: int = 500, chunk_overlap: int = 50) -> List[Dict]:
    """Create sentence-aligned chunks of at most chunk_size characters.

    Consecutive chunks share trailing sentences totalling at most
    chunk_overlap characters. Sentences longer than chunk_size are split
    at fixed offsets.

    Returns:
        List of dicts with index, text, start_char and end_char
    """
    if chunk_overlap >= chunk_size:
        raise ValueError("chunk_overlap must be smaller than chunk_size")

    spans = []
    for start, end in split_sentence_spans(text or ''):
        while end - start > chunk_size:
            spans.append((start, start + chunk_size))
            start += chunk_size
        if end > start:
            spans.append((start, end))

    chunks = []
    i = 0
    while i < len(spans):
        start, end = spans[i]
        j = i
        while j + 1 < len(spans) and spans[j + 1][1] - start <= chunk_size:
            j += 1
            end = spans[j][1]

        chunks.append({
            'index': len(chunks),
            'text': text[start:end].strip(),
            'start_char': start,
            'end_char': end,
        })
        if j + 1 >= len(spans):
            break

        # Step back over trailing sentences that fit in the overlap, always advancing
        k = j + 1
        while k - 1 > i and end - spans[k - 1][0] <= chunk_overlap:
            k -= 1
        i = k

    if len(chunks) > 100:
        logger.info(f"Created {len(chunks)} chunks from {len(text)} characters")
    return chunks


def batched(items: List, size: int) -> List[List]:
    return [items[i:i + size] for i in range(0, len(items), max(size, 1))]
