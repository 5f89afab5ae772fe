"""Query-driven chunk selection for retrieval mode."""

from rlm_analyzer.retrieval.ranker import rank_chunks, score_chunk, tokenize

__all__ = ["rank_chunks", "score_chunk", "tokenize"]
