"""Knowledge graph construction and export.

Merges per-chunk entity extractions into a deduplicated graph and renders
it for prompts (summary text) or external tools (JSON, GraphML, GEXF, CSV).
"""

from rlm_analyzer.graph.builder import build_graph, merge_entities, name_similarity, summarize_graph
from rlm_analyzer.graph.export import export_graph, serialize_graph, to_networkx

__all__ = [
    "build_graph",
    "export_graph",
    "merge_entities",
    "name_similarity",
    "serialize_graph",
    "summarize_graph",
    "to_networkx",
]
