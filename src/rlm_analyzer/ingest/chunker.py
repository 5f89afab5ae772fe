"""Text chunker: splits documents into paragraph-aligned, citable segments.

Chunk ids (``doc-<n>-chunk-<m>``) are the unit of citation, so they depend
only on document position and chunk order, never on scheduling.
"""

import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass

from rlm_analyzer.analysis.models import DocumentInput

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 1800

# Paragraph separator used both for splitting input and joining chunk text
PARAGRAPH_SEPARATOR = "\n\n"

_BLANK_LINES = re.compile(r"\n\s*\n")


@dataclass(frozen=True)
class Chunk:
    """A bounded slice of one source document.

    ``start``/``end`` are offsets into the paragraph-joined document text,
    where every paragraph consumes ``len(paragraph) + 2`` characters.
    """

    id: str
    doc_id: str
    index: int
    text: str
    start: int
    end: int


def split_paragraphs(text: str) -> list[str]:
    """Split on blank lines, trim each paragraph, drop empty ones."""
    return [part.strip() for part in _BLANK_LINES.split(text) if part.strip()]


def build_chunks(
    documents: Sequence[DocumentInput],
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> list[Chunk]:
    """Split documents into chunks of at most ``chunk_size`` characters.

    Paragraphs are never split. A paragraph longer than ``chunk_size`` is
    emitted whole as its own oversized chunk.

    Args:
        documents: Normalized documents, in citation order
        chunk_size: Target maximum characters per chunk

    Returns:
        Chunks for all documents, document order then chunk order
    """
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")

    chunks: list[Chunk] = []
    for doc_index, doc in enumerate(documents, start=1):
        doc_chunks = _chunk_document(doc, doc_index, chunk_size)
        logger.debug(f"{doc.id}: {len(doc.text):,} chars → {len(doc_chunks)} chunks")
        chunks.extend(doc_chunks)
    return chunks


def _chunk_document(doc: DocumentInput, doc_index: int, chunk_size: int) -> list[Chunk]:
    chunks: list[Chunk] = []
    buffer: list[str] = []
    buffer_len = 0
    start = 0
    cursor = 0

    def flush(end: int) -> None:
        nonlocal buffer, buffer_len, start
        if not buffer:
            return
        index = len(chunks)
        chunks.append(Chunk(
            id=f"doc-{doc_index}-chunk-{index + 1}",
            doc_id=doc.id,
            index=index,
            text=PARAGRAPH_SEPARATOR.join(buffer),
            start=start,
            end=end,
        ))
        buffer = []
        buffer_len = 0
        start = end

    for paragraph in split_paragraphs(doc.text):
        joined_len = buffer_len + len(PARAGRAPH_SEPARATOR) + len(paragraph) if buffer else len(paragraph)
        if joined_len > chunk_size and buffer:
            flush(cursor)
            joined_len = len(paragraph)

        buffer.append(paragraph)
        buffer_len = joined_len
        cursor += len(paragraph) + len(PARAGRAPH_SEPARATOR)

        if buffer_len >= chunk_size:
            flush(cursor)

    flush(cursor)
    return chunks
