"""Document reader for the CLI: loads plain-text documents from disk.

Binary formats (PDF, DOCX) are expected to be converted to text upstream.
"""

import logging
from collections.abc import Iterable
from pathlib import Path

from rlm_analyzer.analysis.models import DocumentInput

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = {".txt", ".md"}


def read_document(path: Path) -> str:
    """Read text content from a document file.

    Raises:
        ValueError: If file type is unsupported
    """
    path = Path(path)
    suffix = path.suffix.lower()

    if suffix not in SUPPORTED_EXTENSIONS:
        raise ValueError(
            f"Unsupported file type: {suffix}. "
            f"Supported: {', '.join(sorted(SUPPORTED_EXTENSIONS))}"
        )

    return path.read_text(encoding="utf-8", errors="replace").strip()


def discover_documents(paths: Iterable[Path]) -> list[Path]:
    """Expand files and directories (recursively) into supported document paths.

    Explicit files keep their argument order; directory contents are sorted.
    """
    docs: list[Path] = []
    for path in map(Path, paths):
        if path.is_dir():
            found: list[Path] = []
            for ext in SUPPORTED_EXTENSIONS:
                found.extend(path.rglob(f"*{ext}"))
            docs.extend(sorted(found))
        elif path.is_file():
            docs.append(path)
        else:
            raise ValueError(f"No such file or directory: {path}")
    return docs


def load_documents(paths: Iterable[Path]) -> list[DocumentInput]:
    """Read every discovered document, using the file stem as its id."""
    documents = []
    for doc_path in discover_documents(paths):
        text = read_document(doc_path)
        if not text:
            logger.warning(f"Empty text from {doc_path.name}")
        documents.append(DocumentInput(id=doc_path.stem, text=text))
    return documents
