"""Document ingestion: loading text and splitting it into citable chunks."""

from rlm_analyzer.ingest.chunker import Chunk, build_chunks, split_paragraphs
from rlm_analyzer.ingest.reader import discover_documents, load_documents, read_document

__all__ = [
    "Chunk",
    "build_chunks",
    "discover_documents",
    "load_documents",
    "read_document",
    "split_paragraphs",
]
