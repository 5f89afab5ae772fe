"""Term-frequency chunk ranking for retrieval mode.

Scores are raw query-term occurrence counts: no IDF and no length
normalization.
"""

import re
from collections import Counter
from collections.abc import Sequence

from rlm_analyzer.ingest.chunker import Chunk

DEFAULT_TOP_K = 8

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def tokenize(text: str) -> list[str]:
    """Lower-case and split on runs of non-alphanumeric characters."""
    return [token for token in _NON_ALNUM.split(text.lower()) if token]


def score_chunk(chunk: Chunk, query_tokens: Sequence[str]) -> int:
    """Sum of occurrence counts of each query token in the chunk.

    Repeated query tokens count once per repetition.
    """
    counts = Counter(tokenize(chunk.text))
    if not counts:
        return 0
    return sum(counts[token] for token in query_tokens)


def rank_chunks(
    chunks: Sequence[Chunk],
    query: str,
    top_k: int = DEFAULT_TOP_K,
) -> list[Chunk]:
    """Return up to ``top_k`` chunks with a positive score, best first.

    Ties keep their original order.
    """
    query_tokens = tokenize(query)
    if not query_tokens:
        return []

    scored = [(chunk, score_chunk(chunk, query_tokens)) for chunk in chunks]
    scored = [(chunk, score) for chunk, score in scored if score > 0]
    scored.sort(key=lambda entry: entry[1], reverse=True)
    return [chunk for chunk, _score in scored[:top_k]]
